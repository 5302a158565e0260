"""
File Discovery

Resolves the set of source files a pipeline run will parse, either from an
explicit selection (minus exclusions) or from glob patterns (minus ignores).
"""

import fnmatch
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

from .config import DEFAULT_IGNORE_PATTERNS

logger = logging.getLogger(__name__)

_BRACE_GROUP = re.compile(r'\{([^{}]*)\}')


def expand_braces(pattern: str) -> List[str]:
    """Expand shell-style brace groups: 'src/*.{py,go}' -> ['src/*.py', 'src/*.go']."""
    match = _BRACE_GROUP.search(pattern)
    if not match:
        return [pattern]

    expanded: List[str] = []
    for option in match.group(1).split(','):
        candidate = pattern[:match.start()] + option + pattern[match.end():]
        expanded.extend(expand_braces(candidate))
    return expanded


class FileDiscovery:
    """
    Resolves source files under a project root.

    Returned paths are absolute, deduplicated (first occurrence wins) and
    verified to exist as regular files.
    """

    def __init__(self, project_path: str):
        self.project_root = Path(project_path).resolve()

    def resolve(
        self,
        selected_files: Optional[Iterable[str]] = None,
        excluded_files: Optional[Iterable[str]] = None,
        patterns: Optional[Iterable[str]] = None,
        ignore_patterns: Optional[Iterable[str]] = None
    ) -> List[str]:
        """
        Resolve files to parse.

        Args:
            selected_files: Explicit files (relative to the project root or absolute)
            excluded_files: Files removed from an explicit selection
            patterns: Glob patterns used when no selection is given
            ignore_patterns: Directory names or glob patterns skipped during globbing

        Returns:
            List of absolute file paths
        """
        selected = list(selected_files or [])

        if selected:
            excluded = {self._absolute(p) for p in (excluded_files or [])}
            candidates = [self._absolute(p) for p in selected]
            candidates = [p for p in candidates if p not in excluded]
            logger.info(f"📂 Using {len(candidates)} selected files ({len(excluded)} excluded)")
        else:
            ignores = list(DEFAULT_IGNORE_PATTERNS if ignore_patterns is None else ignore_patterns)
            candidates = self._glob(list(patterns or []), ignores)
            logger.info(f"📂 Found {len(candidates)} files matching patterns")

        seen = set()
        resolved: List[str] = []
        for path in candidates:
            if path in seen:
                continue
            seen.add(path)
            if not Path(path).is_file():
                logger.warning(f"⚠️ Skipping missing file: {path}")
                continue
            resolved.append(path)

        return resolved

    def _absolute(self, path: str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        return str(candidate.resolve())

    def _glob(self, patterns: List[str], ignores: List[str]) -> List[str]:
        matches: List[str] = []
        for pattern in patterns:
            for expanded in expand_braces(pattern):
                for path in sorted(self.project_root.glob(expanded)):
                    if not path.is_file() or self._is_ignored(path, ignores):
                        continue
                    matches.append(str(path.resolve()))
        return matches

    def _is_ignored(self, path: Path, ignores: List[str]) -> bool:
        relative = path.relative_to(self.project_root)
        for ignore in ignores:
            if ignore in relative.parts[:-1]:
                return True
            if fnmatch.fnmatch(relative.as_posix(), ignore):
                return True
        return False
