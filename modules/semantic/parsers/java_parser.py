"""
Java Parser

Extracts classes, interfaces, enums, annotation types, methods and
constructors from Java source. Members are named Class.member; modifiers,
annotations, Javadoc and signature details go into metadata.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..core.ai_item import AiItem
from .base_parser import (
    LanguageParser,
    ParseContext,
    children_of_type,
    extract_brace_span,
    find_ancestor,
    first_child_of_type,
    node_text,
    preceding_comment,
    split_params,
)

logger = logging.getLogger(__name__)

TYPE_DECLARATIONS = ('class_declaration', 'interface_declaration', 'enum_declaration', 'record_declaration')

MODIFIER_KEYWORDS = {
    'public', 'private', 'protected', 'static', 'abstract', 'final',
    'synchronized', 'native', 'transient', 'volatile', 'strictfp', 'default',
    'sealed', 'non-sealed',
}

CONTROL_KEYWORDS = {'if', 'for', 'while', 'switch', 'catch', 'synchronized', 'return', 'new', 'else', 'throw'}

CLASS_PATTERN = re.compile(r'^\s*(?:(?:public|private|protected|abstract|final|static|sealed)\s+)*class\s+(\w+)')
INTERFACE_PATTERN = re.compile(r'^\s*(?:(?:public|private|protected|abstract|static|sealed)\s+)*interface\s+(\w+)')
ENUM_PATTERN = re.compile(r'^\s*(?:(?:public|private|protected|static)\s+)*enum\s+(\w+)')
ANNOTATION_PATTERN = re.compile(r'^\s*(?:(?:public|private|protected)\s+)*@interface\s+(\w+)')
METHOD_PATTERN = re.compile(
    r'^\s*((?:(?:public|private|protected|static|final|abstract|synchronized|native|default)\s+)*)'
    r'(?:<[^>]+>\s+)?([\w<>\[\],.?][\w<>\[\],.?\s]*?)\s+(\w+)\s*\(([^)]*)\)?'
)
CONSTRUCTOR_PATTERN = re.compile(r'^\s*((?:(?:public|private|protected)\s+)*)(\w+)\s*\(([^)]*)\)?\s*(?:throws\s+[\w.,\s]+)?\{?\s*$')


class JavaParser(LanguageParser):
    """Java parser (tree-sitter-java with regex fallback)."""

    language = "java"

    def _load_language(self, key: str):
        import tree_sitter_java

        return tree_sitter_java.language()

    def construct_handlers(self):
        return {
            'class_declaration': self._handle_type_declaration,
            'interface_declaration': self._handle_type_declaration,
            'enum_declaration': self._handle_type_declaration,
            'annotation_type_declaration': self._handle_type_declaration,
            'method_declaration': self._handle_method,
            'constructor_declaration': self._handle_method,
        }

    # ===== AST HANDLERS =====

    def _handle_type_declaration(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        item_type = {
            'class_declaration': 'class',
            'interface_declaration': 'interface',
            'enum_declaration': 'enum',
            'annotation_type_declaration': 'annotation',
        }[node.type]

        metadata = self._modifier_metadata(node, ctx)
        metadata['javadoc'] = preceding_comment(node, ctx, comment_types=('block_comment', 'comment'))
        metadata['type_parameters'] = self._type_parameters(node, ctx)

        superclass = node.child_by_field_name('superclass')
        metadata['superclass'] = self._type_names(superclass, ctx)[0] if superclass is not None else None

        interfaces_node = node.child_by_field_name('interfaces')
        if node.type == 'interface_declaration':
            interfaces_node = first_child_of_type(node, 'extends_interfaces')
        metadata['interfaces'] = self._type_names(interfaces_node, ctx)

        if node.type == 'enum_declaration':
            body = node.child_by_field_name('body')
            metadata['enum_constants'] = [
                node_text(constant.child_by_field_name('name'), ctx)
                for constant in children_of_type(body, 'enum_constant')
                if constant.child_by_field_name('name') is not None
            ]

        outer = find_ancestor(node, *TYPE_DECLARATIONS)
        if outer is not None and outer.child_by_field_name('name') is not None:
            metadata['class_name'] = node_text(outer.child_by_field_name('name'), ctx)

        return self._item_from_node(ctx, item_type, name, node, metadata)

    def _handle_method(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        owner = find_ancestor(node, *TYPE_DECLARATIONS)
        class_name = None
        if owner is not None and owner.child_by_field_name('name') is not None:
            class_name = node_text(owner.child_by_field_name('name'), ctx)

        is_constructor = node.type == 'constructor_declaration'
        metadata = self._modifier_metadata(node, ctx)
        return_type = node.child_by_field_name('type')
        metadata.update({
            'javadoc': preceding_comment(node, ctx, comment_types=('block_comment', 'comment')),
            'class_name': class_name,
            'return_type': None if is_constructor else node_text(return_type, ctx) or None,
            'parameters': self._parameters(node.child_by_field_name('parameters'), ctx),
            'exceptions': self._type_names(first_child_of_type(node, 'throws'), ctx),
            'type_parameters': self._type_parameters(node, ctx),
        })

        qualified = f"{class_name}.{name}" if class_name else name
        item_type = 'constructor' if is_constructor else 'method'
        return self._item_from_node(ctx, item_type, qualified, node, metadata)

    # ===== METADATA HELPERS =====

    def _modifier_metadata(self, node, ctx: ParseContext) -> Dict[str, Any]:
        modifiers: List[str] = []
        annotations: List[str] = []

        modifiers_node = first_child_of_type(node, 'modifiers')
        if modifiers_node is not None:
            for child in modifiers_node.children:
                if child.type in ('annotation', 'marker_annotation'):
                    annotations.append(node_text(child, ctx))
                else:
                    text = node_text(child, ctx)
                    if text in MODIFIER_KEYWORDS:
                        modifiers.append(text)

        return {
            'modifiers': modifiers,
            'annotations': annotations,
            'is_public': 'public' in modifiers,
            'is_private': 'private' in modifiers,
            'is_protected': 'protected' in modifiers,
            'is_static': 'static' in modifiers,
            'is_abstract': 'abstract' in modifiers,
            'is_final': 'final' in modifiers,
        }

    def _type_parameters(self, node, ctx: ParseContext) -> List[str]:
        params_node = node.child_by_field_name('type_parameters')
        if params_node is None:
            params_node = first_child_of_type(node, 'type_parameters')
        return [node_text(param, ctx) for param in children_of_type(params_node, 'type_parameter')]

    def _type_names(self, node, ctx: ParseContext) -> List[str]:
        """Type names under a superclass/super_interfaces/extends_interfaces/throws node."""
        if node is None:
            return []
        names = []
        for child in node.named_children:
            if child.type == 'type_list':
                names.extend(node_text(t, ctx) for t in child.named_children)
            else:
                names.append(node_text(child, ctx))
        return names

    def _parameters(self, params_node, ctx: ParseContext) -> List[Dict[str, Any]]:
        params = []
        for param in children_of_type(params_node, 'formal_parameter', 'spread_parameter'):
            if param.type == 'spread_parameter':
                text = node_text(param, ctx)
                parts = text.replace('...', ' ').split()
                params.append({'name': parts[-1] if parts else '', 'type': ' '.join(parts[:-1]), 'varargs': True})
                continue
            params.append({
                'name': node_text(param.child_by_field_name('name'), ctx),
                'type': node_text(param.child_by_field_name('type'), ctx),
                'varargs': False,
            })
        return params

    # ===== REGEX FALLBACK =====

    def _parse_with_regex(self, ctx: ParseContext) -> List[AiItem]:
        items: List[AiItem] = []
        current_class: Optional[str] = None

        for index, line in enumerate(ctx.lines):
            stripped = line.strip()
            if not stripped or stripped.startswith(('//', '*', '/*', '@Override')):
                continue

            item_type = None
            name = None
            metadata: Dict[str, Any] = {}

            for pattern, kind in ((ANNOTATION_PATTERN, 'annotation'), (CLASS_PATTERN, 'class'),
                                  (INTERFACE_PATTERN, 'interface'), (ENUM_PATTERN, 'enum')):
                match = pattern.match(line)
                if match:
                    item_type, name = kind, match.group(1)
                    current_class = name
                    break

            if item_type is None:
                method_match = METHOD_PATTERN.match(line)
                constructor_match = CONSTRUCTOR_PATTERN.match(line)
                if constructor_match and constructor_match.group(2) == current_class:
                    item_type = 'constructor'
                    member = constructor_match.group(2)
                    modifiers = constructor_match.group(1).split()
                    metadata['parameters'] = split_params(constructor_match.group(3))
                elif method_match and method_match.group(3) not in CONTROL_KEYWORDS:
                    return_type = method_match.group(2).strip()
                    if (not return_type or return_type.split()[-1] in CONTROL_KEYWORDS
                            or stripped.endswith(';') and '=' in stripped):
                        continue
                    item_type = 'method'
                    member = method_match.group(3)
                    modifiers = method_match.group(1).split()
                    metadata['return_type'] = return_type
                    metadata['parameters'] = split_params(method_match.group(4))
                else:
                    continue

                metadata['modifiers'] = modifiers
                metadata['class_name'] = current_class
                name = f"{current_class}.{member}" if current_class else member

            end_index, _ = extract_brace_span(ctx.lines, index)
            items.append(self._item_from_lines(ctx, item_type, name, index, end_index, metadata))

        return items
