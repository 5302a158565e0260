"""
Python Parser

Extracts functions and classes from Python source. Functions defined directly
in a class body are named Class.method. Decorators, docstrings, parameters and
base classes go into metadata.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..core.ai_item import AiItem
from .base_parser import (
    LanguageParser,
    ParseContext,
    children_of_type,
    extract_indent_span,
    first_child_of_type,
    has_child_token,
    indentation,
    node_text,
    split_params,
)

logger = logging.getLogger(__name__)

DEF_PATTERN = re.compile(r'^(\s*)(async\s+)?def\s+(\w+)\s*\((.*)')
CLASS_PATTERN = re.compile(r'^(\s*)class\s+(\w+)\s*(?:\(([^)]*)\))?\s*:')
DECORATOR_PATTERN = re.compile(r'^\s*@([\w.]+)')

_STRING_QUOTES = re.compile(r'^[rRbBuUfF]*("""|\'\'\'|"|\')|("""|\'\'\'|"|\')$')


def clean_docstring(raw: str) -> str:
    return _STRING_QUOTES.sub('', raw.strip()).strip()


class PythonParser(LanguageParser):
    """Python parser (tree-sitter-python with indentation-based regex fallback)."""

    language = "python"

    def _load_language(self, key: str):
        import tree_sitter_python

        return tree_sitter_python.language()

    def construct_handlers(self):
        return {
            'function_definition': self._handle_function,
            'class_definition': self._handle_class,
        }

    # ===== AST HANDLERS =====

    def _handle_function(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        class_name = self._enclosing_class(node, ctx)
        return_type = node.child_by_field_name('return_type')

        metadata = {
            'is_async': has_child_token(node, 'async'),
            'parameters': self._parameters(node.child_by_field_name('parameters'), ctx),
            'return_type': node_text(return_type, ctx) if return_type is not None else None,
            'decorators': self._decorators(node, ctx),
            'docstring': self._docstring(node, ctx),
            'is_method': class_name is not None,
            'class_name': class_name,
        }

        qualified = f"{class_name}.{name}" if class_name else name
        return self._item_from_node(ctx, 'function', qualified, node, metadata)

    def _handle_class(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        base_classes = []
        superclasses = node.child_by_field_name('superclasses')
        if superclasses is not None:
            base_classes = [
                node_text(arg, ctx) for arg in superclasses.named_children
                if arg.type not in ('keyword_argument', 'comment')
            ]

        methods = []
        for child in self._body_definitions(node):
            method_name = child.child_by_field_name('name')
            if method_name is not None:
                methods.append(node_text(method_name, ctx))

        metadata = {
            'base_classes': base_classes,
            'decorators': self._decorators(node, ctx),
            'docstring': self._docstring(node, ctx),
            'methods': methods,
        }
        return self._item_from_node(ctx, 'class', name, node, metadata)

    # ===== METADATA HELPERS =====

    def _body_definitions(self, class_node) -> List[Any]:
        body = class_node.child_by_field_name('body')
        definitions = []
        for child in children_of_type(body, 'function_definition', 'decorated_definition'):
            if child.type == 'decorated_definition':
                child = child.child_by_field_name('definition')
            if child is not None and child.type == 'function_definition':
                definitions.append(child)
        return definitions

    def _enclosing_class(self, node, ctx: ParseContext) -> Optional[str]:
        """Class name when the function sits directly in a class body."""
        parent = node.parent
        if parent is not None and parent.type == 'decorated_definition':
            parent = parent.parent
        if parent is None or parent.type != 'block':
            return None
        owner = parent.parent
        if owner is None or owner.type != 'class_definition':
            return None
        name_node = owner.child_by_field_name('name')
        return node_text(name_node, ctx) if name_node is not None else None

    def _decorators(self, node, ctx: ParseContext) -> List[str]:
        parent = node.parent
        if parent is None or parent.type != 'decorated_definition':
            return []
        return [node_text(d, ctx).lstrip('@').strip() for d in children_of_type(parent, 'decorator')]

    def _docstring(self, node, ctx: ParseContext) -> Optional[str]:
        body = node.child_by_field_name('body')
        if body is None or not body.named_children:
            return None
        first = body.named_children[0]
        if first.type != 'expression_statement':
            return None
        string_node = first_child_of_type(first, 'string')
        if string_node is None:
            return None
        return clean_docstring(node_text(string_node, ctx))

    def _parameters(self, params_node, ctx: ParseContext) -> List[Dict[str, Any]]:
        params: List[Dict[str, Any]] = []
        if params_node is None:
            return params

        for param in params_node.named_children:
            if param.type == 'identifier':
                params.append({'name': node_text(param, ctx), 'type': None, 'default': None})
            elif param.type == 'typed_parameter':
                ident = first_child_of_type(param, 'identifier', 'list_splat_pattern', 'dictionary_splat_pattern')
                params.append({
                    'name': node_text(ident, ctx),
                    'type': node_text(param.child_by_field_name('type'), ctx),
                    'default': None,
                })
            elif param.type in ('default_parameter', 'typed_default_parameter'):
                type_node = param.child_by_field_name('type')
                params.append({
                    'name': node_text(param.child_by_field_name('name'), ctx),
                    'type': node_text(type_node, ctx) if type_node is not None else None,
                    'default': node_text(param.child_by_field_name('value'), ctx),
                })
            elif param.type in ('list_splat_pattern', 'dictionary_splat_pattern'):
                params.append({'name': node_text(param, ctx), 'type': None, 'default': None})
        return params

    # ===== REGEX FALLBACK =====

    def _parse_with_regex(self, ctx: ParseContext) -> List[AiItem]:
        items: List[AiItem] = []
        # Open scopes as (indent, kind, name); the innermost decides method ownership
        scopes: List[Tuple[int, str, str]] = []

        for index, line in enumerate(ctx.lines):
            class_match = CLASS_PATTERN.match(line)
            def_match = DEF_PATTERN.match(line)
            if not class_match and not def_match:
                continue

            indent = indentation(line)
            while scopes and scopes[-1][0] >= indent:
                scopes.pop()

            end_index, _ = extract_indent_span(ctx.lines, index)
            decorators = self._regex_decorators(ctx.lines, index)

            if class_match:
                name = class_match.group(2)
                metadata = {
                    'base_classes': split_params(class_match.group(3) or ''),
                    'decorators': decorators,
                }
                items.append(self._item_from_lines(ctx, 'class', name, index, end_index, metadata))
                scopes.append((indent, 'class', name))
                continue

            owner = scopes[-1][2] if scopes and scopes[-1][1] == 'class' else None
            name = def_match.group(3)
            metadata = {
                'is_async': bool(def_match.group(2)),
                'parameters': split_params(def_match.group(4).split(')')[0]),
                'decorators': decorators,
                'is_method': owner is not None,
                'class_name': owner,
            }
            qualified = f"{owner}.{name}" if owner else name
            items.append(self._item_from_lines(ctx, 'function', qualified, index, end_index, metadata))
            scopes.append((indent, 'function', name))

        return items

    def _regex_decorators(self, lines: List[str], index: int) -> List[str]:
        decorators = []
        i = index - 1
        while i >= 0:
            match = DECORATOR_PATTERN.match(lines[i])
            if not match:
                break
            decorators.insert(0, match.group(1))
            i -= 1
        return decorators
