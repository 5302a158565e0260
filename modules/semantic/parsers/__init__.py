"""
Language Parsers

Tree-sitter parsers (with regex fallback) that extract AiItems from source files.
"""

from .base_parser import LanguageParser
from .go_parser import GoParser
from .java_parser import JavaParser
from .python_parser import PythonParser
from .typescript_parser import TypeScriptParser
from .dispatcher import ParserDispatcher

__all__ = [
    'LanguageParser',
    'GoParser',
    'JavaParser',
    'PythonParser',
    'TypeScriptParser',
    'ParserDispatcher',
]
