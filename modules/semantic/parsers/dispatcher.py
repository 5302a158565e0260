"""
Parser Dispatcher

Static registry from file extension to language parser instance.
.js/.jsx share the TypeScript parser; the parser corrects the language tag
from the path.
"""

import logging
from pathlib import Path
from typing import Dict, List

from ..core.ai_item import AiItem
from ..core.errors import PerFileParseError, UnsupportedFileTypeError
from .base_parser import LanguageParser
from .go_parser import GoParser
from .java_parser import JavaParser
from .python_parser import PythonParser
from .typescript_parser import TypeScriptParser

logger = logging.getLogger(__name__)


class ParserDispatcher:
    """
    Resolves and invokes the parser for a source file.

    One parser instance per language; each keeps its own lazily initialized
    tree-sitter backend.
    """

    def __init__(self, project_path: str = "."):
        self.project_path = project_path

        typescript_parser = TypeScriptParser(project_path)
        self.parsers: Dict[str, LanguageParser] = {
            '.go': GoParser(project_path),
            '.java': JavaParser(project_path),
            '.py': PythonParser(project_path),
            '.ts': typescript_parser,
            '.tsx': typescript_parser,
            '.js': typescript_parser,
            '.jsx': typescript_parser,
        }

    def supported_extensions(self) -> List[str]:
        return sorted(self.parsers)

    def is_supported(self, file_path: str) -> bool:
        return Path(file_path).suffix.lower() in self.parsers

    def get_parser(self, file_path: str) -> LanguageParser:
        """
        Return the parser registered for the file's extension.

        Raises:
            UnsupportedFileTypeError: If no parser handles the extension
        """
        extension = Path(file_path).suffix.lower()
        parser = self.parsers.get(extension)
        if parser is None:
            raise UnsupportedFileTypeError(str(file_path), extension)
        return parser

    def parse_file(self, file_path: str) -> List[AiItem]:
        """
        Parse a file with its registered parser.

        Raises:
            UnsupportedFileTypeError: If no parser handles the extension
            PerFileParseError: If reading or parsing the file fails
        """
        parser = self.get_parser(file_path)
        try:
            return parser.parse_file(file_path)
        except PerFileParseError:
            raise
        except Exception as e:
            raise PerFileParseError(str(file_path), f"{type(e).__name__}: {e}") from e
