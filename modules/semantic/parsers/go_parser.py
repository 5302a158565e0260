"""
Go Parser

Extracts functions, methods (named Receiver.method), structs, interfaces and
named types from Go source, with GoDoc comments and signature metadata.
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
    first_child_of_type,
    leading_line_comments,
    node_text,
    split_params,
)

logger = logging.getLogger(__name__)

# Regex fallback patterns, checked in order (first match wins)
FUNC_PATTERN = re.compile(r'^\s*func\s+(\w+)\s*[\[(]')
METHOD_PATTERN = re.compile(r'^\s*func\s*\(([^)]*)\)\s*(\w+)\s*[\[(]')
STRUCT_PATTERN = re.compile(r'^\s*type\s+(\w+)\s+struct\b')
INTERFACE_PATTERN = re.compile(r'^\s*type\s+(\w+)\s+interface\b')
TYPE_PATTERN = re.compile(r'^\s*type\s+(\w+)\s+')

_GENERIC_ARGS = re.compile(r'\[.*\]')


def is_exported(name: Optional[str]) -> bool:
    return bool(name) and name[0].isupper()


class GoParser(LanguageParser):
    """Go parser (tree-sitter-go with regex fallback)."""

    language = "go"

    def _load_language(self, key: str):
        import tree_sitter_go

        return tree_sitter_go.language()

    def construct_handlers(self):
        return {
            'function_declaration': self._handle_function,
            'method_declaration': self._handle_method,
            'type_spec': self._handle_type_spec,
            'type_alias': self._handle_type_spec,
        }

    # ===== AST HANDLERS =====

    def _handle_function(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        metadata = {
            'is_exported': is_exported(name),
            'parameters': self._parameters(node.child_by_field_name('parameters'), ctx),
            'return_types': self._return_types(node.child_by_field_name('result'), ctx),
            'comments': leading_line_comments(ctx.lines, node.start_point[0]),
        }
        return self._item_from_node(ctx, 'function', name, node, metadata)

    def _handle_method(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)

        receiver_type, is_pointer = self._receiver(node.child_by_field_name('receiver'), ctx)
        qualified = f"{receiver_type}.{name}" if receiver_type else name

        metadata = {
            'is_exported': is_exported(name),
            'parameters': self._parameters(node.child_by_field_name('parameters'), ctx),
            'return_types': self._return_types(node.child_by_field_name('result'), ctx),
            'comments': leading_line_comments(ctx.lines, node.start_point[0]),
            'receiver_type': receiver_type,
            'is_pointer_receiver': is_pointer,
        }
        return self._item_from_node(ctx, 'method', qualified, node, metadata)

    def _handle_type_spec(self, node, ctx: ParseContext) -> Optional[AiItem]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node, ctx)
        type_node = node.child_by_field_name('type')

        # A single-spec declaration keeps its 'type' keyword in the span
        span_node = node
        parent = node.parent
        if parent is not None and parent.type == 'type_declaration':
            if len(children_of_type(parent, 'type_spec', 'type_alias')) == 1:
                span_node = parent

        metadata: Dict[str, Any] = {
            'is_exported': is_exported(name),
            'comments': leading_line_comments(ctx.lines, span_node.start_point[0]),
        }

        if type_node is not None and type_node.type == 'struct_type':
            item_type = 'struct'
            metadata['fields'] = self._struct_fields(type_node, ctx)
        elif type_node is not None and type_node.type == 'interface_type':
            item_type = 'interface'
            metadata['methods'] = self._interface_methods(type_node, ctx)
        else:
            item_type = 'type'
            metadata['underlying_type'] = node_text(type_node, ctx) if type_node is not None else None
            metadata['is_alias'] = node.type == 'type_alias'

        return self._item_from_node(ctx, item_type, name, span_node, metadata)

    # ===== METADATA HELPERS =====

    def _parameters(self, params_node, ctx: ParseContext) -> List[Dict[str, Any]]:
        params: List[Dict[str, Any]] = []
        for decl in children_of_type(params_node, 'parameter_declaration', 'variadic_parameter_declaration'):
            type_text = node_text(decl.child_by_field_name('type'), ctx)
            variadic = decl.type == 'variadic_parameter_declaration'
            names = decl.children_by_field_name('name')
            if not names:
                params.append({'name': '', 'type': type_text, 'variadic': variadic})
            for name_node in names:
                params.append({'name': node_text(name_node, ctx), 'type': type_text, 'variadic': variadic})
        return params

    def _return_types(self, result_node, ctx: ParseContext) -> List[str]:
        if result_node is None:
            return []
        if result_node.type == 'parameter_list':
            types = []
            for decl in children_of_type(result_node, 'parameter_declaration', 'variadic_parameter_declaration'):
                type_text = node_text(decl.child_by_field_name('type'), ctx)
                types.extend([type_text] * max(1, len(decl.children_by_field_name('name'))))
            return types
        return [node_text(result_node, ctx)]

    def _receiver(self, receiver_node, ctx: ParseContext):
        decl = first_child_of_type(receiver_node, 'parameter_declaration')
        if decl is None:
            return None, False
        type_text = node_text(decl.child_by_field_name('type'), ctx).strip()
        is_pointer = type_text.startswith('*')
        receiver_type = _GENERIC_ARGS.sub('', type_text.lstrip('*').strip())
        return receiver_type or None, is_pointer

    def _struct_fields(self, struct_node, ctx: ParseContext) -> List[Dict[str, Any]]:
        fields: List[Dict[str, Any]] = []
        field_list = first_child_of_type(struct_node, 'field_declaration_list')
        for decl in children_of_type(field_list, 'field_declaration'):
            type_text = node_text(decl.child_by_field_name('type'), ctx)
            tag_node = decl.child_by_field_name('tag')
            tag = node_text(tag_node, ctx) if tag_node is not None else None
            names = decl.children_by_field_name('name')
            if not names:
                # Embedded field
                fields.append({'name': type_text.lstrip('*'), 'type': type_text, 'tag': tag, 'embedded': True})
            for name_node in names:
                fields.append({'name': node_text(name_node, ctx), 'type': type_text, 'tag': tag, 'embedded': False})
        return fields

    def _interface_methods(self, interface_node, ctx: ParseContext) -> List[str]:
        methods = []
        for elem in children_of_type(interface_node, 'method_elem', 'method_spec'):
            name_node = elem.child_by_field_name('name')
            if name_node is not None:
                methods.append(node_text(name_node, ctx))
        return methods

    # ===== REGEX FALLBACK =====

    def _parse_with_regex(self, ctx: ParseContext) -> List[AiItem]:
        items: List[AiItem] = []

        for index, line in enumerate(ctx.lines):
            item_type = None
            name = None
            metadata: Dict[str, Any] = {}

            match = FUNC_PATTERN.match(line)
            if match:
                item_type, name = 'function', match.group(1)
            elif METHOD_PATTERN.match(line):
                match = METHOD_PATTERN.match(line)
                receiver = split_params(match.group(1))
                receiver_type = receiver[0].split()[-1] if receiver else ''
                metadata['is_pointer_receiver'] = receiver_type.startswith('*')
                receiver_type = _GENERIC_ARGS.sub('', receiver_type.lstrip('*'))
                metadata['receiver_type'] = receiver_type or None
                item_type = 'method'
                name = f"{receiver_type}.{match.group(2)}" if receiver_type else match.group(2)
            elif STRUCT_PATTERN.match(line):
                item_type, name = 'struct', STRUCT_PATTERN.match(line).group(1)
            elif INTERFACE_PATTERN.match(line):
                item_type, name = 'interface', INTERFACE_PATTERN.match(line).group(1)
            elif TYPE_PATTERN.match(line):
                item_type, name = 'type', TYPE_PATTERN.match(line).group(1)

            if item_type is None:
                continue

            end_index, _ = extract_brace_span(ctx.lines, index)
            metadata['is_exported'] = is_exported(name.rsplit('.', 1)[-1])
            metadata['comments'] = leading_line_comments(ctx.lines, index)
            items.append(self._item_from_lines(ctx, item_type, name, index, end_index, metadata))

        return items
