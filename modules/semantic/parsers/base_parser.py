"""
Language Parser Base

Shared capability for the language parsers: read a file, pick the AST strategy
(tree-sitter) when a grammar backend is available, otherwise fall back to
line-oriented regex heuristics. Also holds the construct-extraction helpers the
variants share (node text/span, doc comments, brace and indentation spans).
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.ai_item import AiItem, create_ai_item
from ..core.errors import PerFileParseError

logger = logging.getLogger(__name__)

# Header lines scanned for an opening brace before a construct is treated as a one-liner
MAX_HEADER_LINES = 3


@dataclass
class ParseContext:
    """Per-file state handed to construct handlers."""
    file_path: str
    source: str
    source_bytes: bytes
    lines: List[str]
    language: str


class LanguageParser:
    """
    Base class for the tree-sitter/regex language parsers.

    Subclasses provide:
    - language: language tag for emitted items
    - _load_language(key): the tree-sitter Language for a grammar key
    - construct_handlers(): node type -> handler returning an AiItem or None
    - _parse_with_regex(ctx): fallback extraction
    """

    language: str = ""

    def __init__(self, project_path: str = "."):
        self.project_path = project_path
        self._backends: Dict[str, Any] = {}

    # ===== BACKEND =====

    def _grammar_key(self, file_path: str) -> str:
        return "default"

    def _load_language(self, key: str):
        raise NotImplementedError

    def _get_backend(self, file_path: str):
        """
        Return the tree-sitter parser for this file's grammar.

        Initialized lazily on first use and memoized per instance, including
        failure: once a grammar fails to load, this instance stays on regex.
        """
        key = self._grammar_key(file_path)
        if key not in self._backends:
            try:
                import tree_sitter

                language = tree_sitter.Language(self._load_language(key))
                self._backends[key] = tree_sitter.Parser(language)
                logger.info(f"✅ Tree-sitter {self.language} parser initialized ({key})")
            except Exception as e:
                logger.warning(f"⚠️ Tree-sitter {self.language} unavailable, using regex fallback: {e}")
                self._backends[key] = None
        return self._backends[key]

    # ===== ENTRY POINT =====

    def language_for(self, file_path: str) -> str:
        return self.language

    def parse_file(self, file_path: str) -> List[AiItem]:
        """
        Parse one source file into AiItems.

        Raises:
            PerFileParseError: If the file cannot be read or decoded
        """
        source = self._read_source(file_path)
        ctx = ParseContext(
            file_path=str(file_path),
            source=source,
            source_bytes=source.encode('utf-8'),
            lines=source.split('\n'),
            language=self.language_for(file_path),
        )

        backend = self._get_backend(str(file_path))
        if backend is not None:
            items = self._parse_with_tree_sitter(backend, ctx)
        else:
            items = self._parse_with_regex(ctx)

        logger.debug(f"Parsed {len(items)} items from {file_path}")
        return items

    def _read_source(self, file_path: str) -> str:
        try:
            return Path(file_path).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise PerFileParseError(str(file_path), str(e)) from e

    # ===== AST STRATEGY =====

    def construct_handlers(self) -> Dict[str, Callable[[Any, ParseContext], Optional[AiItem]]]:
        raise NotImplementedError

    def _parse_with_tree_sitter(self, backend, ctx: ParseContext) -> List[AiItem]:
        """Depth-first walk; every interesting node yields an item and is still descended into."""
        tree = backend.parse(ctx.source_bytes)
        handlers = self.construct_handlers()
        items: List[AiItem] = []

        stack = [tree.root_node]
        while stack:
            node = stack.pop()
            handler = handlers.get(node.type)
            if handler is not None:
                item = handler(node, ctx)
                if item is not None:
                    items.append(item)
            stack.extend(reversed(node.children))

        return items

    def _parse_with_regex(self, ctx: ParseContext) -> List[AiItem]:
        raise NotImplementedError

    # ===== ITEM CONSTRUCTION =====

    def _item_from_node(
        self,
        ctx: ParseContext,
        item_type: str,
        name: Optional[str],
        node,
        metadata: Dict[str, Any]
    ) -> AiItem:
        code = node_text(node, ctx)
        return create_ai_item(
            item_type=item_type,
            name=name,
            code=code,
            file_path=ctx.file_path,
            project_path=self.project_path,
            language=ctx.language,
            start_line=node.start_point[0] + 1,
            end_line=node.end_point[0] + 1,
            metadata=metadata,
        )

    def _item_from_lines(
        self,
        ctx: ParseContext,
        item_type: str,
        name: str,
        start_index: int,
        end_index: int,
        metadata: Dict[str, Any]
    ) -> AiItem:
        code = '\n'.join(ctx.lines[start_index:end_index + 1])
        return create_ai_item(
            item_type=item_type,
            name=name,
            code=code,
            file_path=ctx.file_path,
            project_path=self.project_path,
            language=ctx.language,
            start_line=start_index + 1,
            end_line=end_index + 1,
            metadata=metadata,
        )


# ===== NODE HELPERS =====

def node_text(node, ctx: ParseContext) -> str:
    if node is None:
        return ""
    return ctx.source_bytes[node.start_byte:node.end_byte].decode('utf-8', errors='replace')


def children_of_type(node, *types: str) -> List[Any]:
    if node is None:
        return []
    return [child for child in node.children if child.type in types]


def first_child_of_type(node, *types: str):
    for child in children_of_type(node, *types):
        return child
    return None


def has_child_token(node, token: str) -> bool:
    return any(child.type == token for child in node.children)


def find_ancestor(node, *types: str):
    current = node.parent
    while current is not None:
        if current.type in types:
            return current
        current = current.parent
    return None


def preceding_comment(node, ctx: ParseContext, comment_types=('comment',), prefix: str = '/**') -> Optional[str]:
    """Doc comment immediately before a node (e.g. JSDoc/Javadoc), if any."""
    sibling = node.prev_sibling
    if sibling is not None and sibling.type in comment_types:
        text = node_text(sibling, ctx)
        if text.startswith(prefix):
            return text
    return None


def leading_line_comments(lines: List[str], start_index: int, marker: str = '//') -> Optional[str]:
    """Contiguous block of line comments ending right above start_index."""
    collected = []
    index = start_index - 1
    while index >= 0:
        stripped = lines[index].strip()
        if not stripped.startswith(marker):
            break
        collected.append(stripped[len(marker):].strip())
        index -= 1
    if not collected:
        return None
    return '\n'.join(reversed(collected))


# ===== REGEX SPAN HELPERS =====

def extract_brace_span(lines: List[str], start_index: int) -> Tuple[int, str]:
    """
    Delimit a C-family construct by counting braces from its header line.

    Braces inside strings and comments are counted like any other, so spans
    can be cut short or run long on such input.

    Returns:
        (end_index, code) for the construct
    """
    depth = 0
    found_open = False

    for index in range(start_index, len(lines)):
        line = lines[index]
        if not found_open and index > start_index:
            if not line.strip() or index - start_index >= MAX_HEADER_LINES:
                return start_index, lines[start_index]

        depth += line.count('{') - line.count('}')
        if '{' in line:
            found_open = True

        if found_open and depth <= 0:
            return index, '\n'.join(lines[start_index:index + 1])
        if not found_open and ';' in line:
            return index, '\n'.join(lines[start_index:index + 1])

    if not found_open:
        return start_index, lines[start_index]
    return len(lines) - 1, '\n'.join(lines[start_index:])


def indentation(line: str) -> int:
    return len(line) - len(line.lstrip())


def extract_indent_span(lines: List[str], start_index: int) -> Tuple[int, str]:
    """
    Delimit an indentation-based block (Python): the header plus every
    following line that is blank or indented deeper than the header.

    Returns:
        (end_index, code) for the construct
    """
    header_indent = indentation(lines[start_index])
    end_index = start_index

    for index in range(start_index + 1, len(lines)):
        line = lines[index]
        if not line.strip():
            continue
        if indentation(line) <= header_indent:
            break
        end_index = index

    return end_index, '\n'.join(lines[start_index:end_index + 1])


def split_params(text: str) -> List[str]:
    """Split a parameter list on top-level commas."""
    params, depth, current = [], 0, []
    for char in text:
        if char in '([{<':
            depth += 1
        elif char in ')]}>':
            depth -= 1
        if char == ',' and depth == 0:
            params.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
    tail = ''.join(current).strip()
    if tail:
        params.append(tail)
    return [p for p in params if p]
