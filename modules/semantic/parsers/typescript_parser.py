"""
TypeScript / JavaScript Parser

Extracts functions, arrow functions, methods, classes, interfaces and type
aliases. JavaScript files share this parser; their language tag is corrected
from the file path, and .tsx/.jsx files are parsed with the TSX grammar.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.ai_item import AiItem
from .base_parser import (
    LanguageParser,
    ParseContext,
    children_of_type,
    extract_brace_span,
    first_child_of_type,
    has_child_token,
    node_text,
    preceding_comment,
    split_params,
)

logger = logging.getLogger(__name__)

JAVASCRIPT_EXTENSIONS = {'.js', '.jsx'}
JSX_EXTENSIONS = {'.tsx', '.jsx'}

CLASS_NODES = ('class_declaration', 'abstract_class_declaration', 'class')
# Export detection stops at these scope boundaries
SCOPE_BOUNDARIES = ('statement_block', 'class_body', 'program')

MEMBER_KEYWORDS = {
    'if', 'for', 'while', 'switch', 'catch', 'return', 'function',
    'new', 'else', 'do', 'try', 'typeof', 'await', 'super',
}

FUNCTION_PATTERN = re.compile(r'^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(\w+)\s*(?:<[^>]*>)?\s*\(([^)]*)')
CLASS_PATTERN = re.compile(r'^\s*(?:export\s+)?(?:default\s+)?(abstract\s+)?class\s+(\w+)(?:\s*<[^>]*>)?(?:\s+extends\s+([\w.]+))?')
INTERFACE_PATTERN = re.compile(r'^\s*(?:export\s+)?(?:declare\s+)?interface\s+(\w+)')
TYPE_PATTERN = re.compile(r'^\s*(?:export\s+)?(?:declare\s+)?type\s+(\w+)\s*(?:<[^>]*>)?\s*=')
ARROW_PATTERN = re.compile(
    r'^\s*(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*(async\s+)?'
    r'(?:\(([^)]*)\)|(\w+))\s*(?::\s*[^=]+)?=>'
)
METHOD_PATTERN = re.compile(
    r'^\s*((?:(?:public|private|protected|static|async|readonly|abstract|override|get|set)\s+)*)'
    r'(\w+)\s*(?:<[^>]*>)?\s*\(([^)]*)\)\s*(?::\s*[^{]+)?\{\s*$'
)


class TypeScriptParser(LanguageParser):
    """TypeScript/JavaScript parser (tree-sitter-typescript with regex fallback)."""

    language = "typescript"

    def _grammar_key(self, file_path: str) -> str:
        return 'tsx' if Path(file_path).suffix.lower() in JSX_EXTENSIONS else 'typescript'

    def _load_language(self, key: str):
        import tree_sitter_typescript

        if key == 'tsx':
            return tree_sitter_typescript.language_tsx()
        return tree_sitter_typescript.language_typescript()

    def language_for(self, file_path: str) -> str:
        if Path(file_path).suffix.lower() in JAVASCRIPT_EXTENSIONS:
            return 'javascript'
        return self.language

    def construct_handlers(self):
        return {
            'function_declaration': self._handle_function,
            'generator_function_declaration': self._handle_function,
            'arrow_function': self._handle_function_expression,
            'function_expression': self._handle_function_expression,
            'method_definition': self._handle_method,
            'class_declaration': self._handle_class,
            'abstract_class_declaration': self._handle_class,
            'interface_declaration': self._handle_interface,
            'type_alias_declaration': self._handle_type_alias,
        }

    # ===== AST HANDLERS =====

    def _handle_function(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        metadata = self._callable_metadata(node, ctx)
        metadata['is_generator'] = node.type == 'generator_function_declaration'
        return self._item_from_node(ctx, 'function', name, node, metadata)

    def _handle_function_expression(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name, class_name = self._expression_name(node, ctx)

        metadata = self._callable_metadata(node, ctx)
        metadata['is_arrow'] = node.type == 'arrow_function'
        metadata['class_name'] = class_name

        qualified = f"{class_name}.{name}" if class_name else name
        return self._item_from_node(ctx, 'function', qualified, node, metadata)

    def _handle_method(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)
        class_name = self._owning_class(node, ctx)

        metadata = self._callable_metadata(node, ctx)
        accessibility = first_child_of_type(node, 'accessibility_modifier')
        metadata.update({
            'class_name': class_name,
            'is_static': has_child_token(node, 'static'),
            'accessibility': node_text(accessibility, ctx) if accessibility is not None else 'public',
            'is_abstract': has_child_token(node, 'abstract'),
            'kind': 'getter' if has_child_token(node, 'get') else 'setter' if has_child_token(node, 'set') else 'method',
        })

        qualified = f"{class_name}.{name}" if class_name else name
        return self._item_from_node(ctx, 'method', qualified, node, metadata)

    def _handle_class(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        superclass = None
        implements: List[str] = []
        heritage = first_child_of_type(node, 'class_heritage')
        if heritage is not None:
            extends_clause = first_child_of_type(heritage, 'extends_clause')
            implements_clause = first_child_of_type(heritage, 'implements_clause')
            if extends_clause is not None and extends_clause.named_children:
                superclass = node_text(extends_clause.named_children[0], ctx)
            elif extends_clause is None and implements_clause is None and heritage.named_children:
                superclass = node_text(heritage.named_children[0], ctx)
            if implements_clause is not None:
                implements = [node_text(t, ctx) for t in implements_clause.named_children]

        body = node.child_by_field_name('body')
        methods = []
        for member in children_of_type(body, 'method_definition'):
            member_name = member.child_by_field_name('name')
            if member_name is not None:
                methods.append(node_text(member_name, ctx))

        metadata = {
            'is_exported': self._is_exported(node),
            'is_abstract': node.type == 'abstract_class_declaration',
            'superclass': superclass,
            'implements': implements,
            'type_parameters': self._type_parameters(node, ctx),
            'methods': methods,
            'jsdoc': self._jsdoc(node, ctx),
        }
        return self._item_from_node(ctx, 'class', name, node, metadata)

    def _handle_interface(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None

        extends_clause = first_child_of_type(node, 'extends_type_clause', 'extends_clause')
        metadata = {
            'is_exported': self._is_exported(node),
            'extends': [node_text(t, ctx) for t in extends_clause.named_children] if extends_clause is not None else [],
            'type_parameters': self._type_parameters(node, ctx),
            'jsdoc': self._jsdoc(node, ctx),
        }
        return self._item_from_node(ctx, 'interface', node_text(name_node, ctx), node, metadata)

    def _handle_type_alias(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None

        value = node.child_by_field_name('value')
        metadata = {
            'is_exported': self._is_exported(node),
            'type_parameters': self._type_parameters(node, ctx),
            'definition': node_text(value, ctx) if value is not None else None,
            'jsdoc': self._jsdoc(node, ctx),
        }
        return self._item_from_node(ctx, 'type', node_text(name_node, ctx), node, metadata)

    # ===== METADATA HELPERS =====

    def _callable_metadata(self, node, ctx: ParseContext) -> Dict[str, Any]:
        return_type = node.child_by_field_name('return_type')
        return {
            'is_async': has_child_token(node, 'async'),
            'is_exported': self._is_exported(node),
            'parameters': self._parameters(node, ctx),
            'return_type': node_text(return_type, ctx).lstrip(':').strip() if return_type is not None else None,
            'type_parameters': self._type_parameters(node, ctx),
            'jsdoc': self._jsdoc(node, ctx),
        }

    def _parameters(self, node, ctx: ParseContext) -> List[Dict[str, Any]]:
        params_node = node.child_by_field_name('parameters')
        if params_node is None:
            # Single bare arrow parameter: x => x + 1
            single = node.child_by_field_name('parameter')
            return [{'name': node_text(single, ctx), 'type': None, 'optional': False}] if single is not None else []

        params = []
        for param in params_node.named_children:
            if param.type in ('required_parameter', 'optional_parameter'):
                pattern = param.child_by_field_name('pattern')
                type_node = param.child_by_field_name('type')
                params.append({
                    'name': node_text(pattern, ctx) if pattern is not None else node_text(param, ctx),
                    'type': node_text(type_node, ctx).lstrip(':').strip() if type_node is not None else None,
                    'optional': param.type == 'optional_parameter',
                })
            elif param.type != 'comment':
                params.append({'name': node_text(param, ctx), 'type': None, 'optional': False})
        return params

    def _type_parameters(self, node, ctx: ParseContext) -> List[str]:
        params_node = node.child_by_field_name('type_parameters')
        return [node_text(p, ctx) for p in children_of_type(params_node, 'type_parameter')]

    def _declaration_anchor(self, node):
        """Outermost node of the declaration a construct belongs to (for export/doc lookup)."""
        anchor = node
        parent = node.parent
        while parent is not None and parent.type in ('variable_declarator', 'lexical_declaration',
                                                      'variable_declaration', 'export_statement'):
            anchor = parent
            parent = parent.parent
        return anchor

    def _is_exported(self, node) -> bool:
        current = node.parent
        while current is not None and current.type not in SCOPE_BOUNDARIES:
            if current.type == 'export_statement':
                return True
            current = current.parent
        return False

    def _jsdoc(self, node, ctx: ParseContext) -> Optional[str]:
        return preceding_comment(self._declaration_anchor(node), ctx)

    def _owning_class(self, node, ctx: ParseContext) -> Optional[str]:
        body = node.parent
        if body is None or body.type != 'class_body':
            return None
        owner = body.parent
        if owner is None or owner.type not in CLASS_NODES:
            return None
        name_node = owner.child_by_field_name('name')
        return node_text(name_node, ctx) if name_node is not None else None

    def _expression_name(self, node, ctx: ParseContext):
        """Name an arrow/function expression from where it is bound; (name, class_name)."""
        own_name = node.child_by_field_name('name')
        if own_name is not None:
            return node_text(own_name, ctx), None

        parent = node.parent
        if parent is None:
            return 'anonymous', None
        if parent.type == 'variable_declarator':
            return field_or_anonymous(parent, 'name', ctx), None
        if parent.type == 'pair':
            return field_or_anonymous(parent, 'key', ctx), None
        if parent.type == 'assignment_expression':
            return field_or_anonymous(parent, 'left', ctx), None
        if parent.type == 'public_field_definition':
            return field_or_anonymous(parent, 'name', ctx), self._owning_class(parent, ctx)
        return 'anonymous', None

    # ===== REGEX FALLBACK =====

    def _parse_with_regex(self, ctx: ParseContext) -> List[AiItem]:
        items: List[AiItem] = []
        current_class: Optional[str] = None
        class_end = -1

        for index, line in enumerate(ctx.lines):
            stripped = line.strip()
            if not stripped or stripped.startswith(('//', '*', '/*')):
                continue
            if index > class_end:
                current_class = None

            exported = stripped.startswith('export ')
            item_type = None
            name = None
            metadata: Dict[str, Any] = {'is_exported': exported}

            match = FUNCTION_PATTERN.match(line)
            if match:
                item_type, name = 'function', match.group(1)
                metadata['is_async'] = 'async ' in line.split('function')[0]
                metadata['parameters'] = split_params(match.group(2))
            elif CLASS_PATTERN.match(line):
                match = CLASS_PATTERN.match(line)
                item_type, name = 'class', match.group(2)
                metadata['is_abstract'] = bool(match.group(1))
                metadata['superclass'] = match.group(3)
            elif INTERFACE_PATTERN.match(line):
                item_type, name = 'interface', INTERFACE_PATTERN.match(line).group(1)
            elif TYPE_PATTERN.match(line):
                item_type, name = 'type', TYPE_PATTERN.match(line).group(1)
            elif ARROW_PATTERN.match(line):
                match = ARROW_PATTERN.match(line)
                item_type, name = 'function', match.group(1)
                metadata['is_arrow'] = True
                metadata['is_async'] = bool(match.group(2))
                metadata['parameters'] = split_params(match.group(3) or match.group(4) or '')
            elif current_class and METHOD_PATTERN.match(line):
                match = METHOD_PATTERN.match(line)
                if match.group(2) in MEMBER_KEYWORDS:
                    continue
                modifiers = match.group(1).split()
                item_type = 'method'
                name = f"{current_class}.{match.group(2)}"
                metadata.update({
                    'class_name': current_class,
                    'is_static': 'static' in modifiers,
                    'is_async': 'async' in modifiers,
                    'accessibility': next((m for m in modifiers if m in ('public', 'private', 'protected')), 'public'),
                    'parameters': split_params(match.group(3)),
                })

            if item_type is None:
                continue

            end_index, _ = extract_brace_span(ctx.lines, index)
            if item_type == 'class':
                current_class, class_end = name, end_index
            items.append(self._item_from_lines(ctx, item_type, name, index, end_index, metadata))

        return items


def field_or_anonymous(node, field_name: str, ctx: ParseContext) -> str:
    child = node.child_by_field_name(field_name)
    return node_text(child, ctx) if child is not None else 'anonymous'
