"""
Unit tests for FileDiscovery: explicit selection vs. glob patterns.

Run: python -m pytest tests/unit/test_file_discovery.py -v
"""
import logging
import sys
import tempfile
from pathlib import Path
from unittest import TestCase

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.core.file_discovery import FileDiscovery, expand_braces

_DISCOVERY_LOGGER = "modules.semantic.core.file_discovery"


class TestExpandBraces(TestCase):

    def test_expands_single_group(self):
        self.assertEqual(expand_braces("src/*.{py,go}"), ["src/*.py", "src/*.go"])

    def test_expands_multiple_groups(self):
        self.assertEqual(
            expand_braces("{a,b}/*.{x,y}"),
            ["a/*.x", "a/*.y", "b/*.x", "b/*.y"],
        )

    def test_no_group(self):
        self.assertEqual(expand_braces("**/*.py"), ["**/*.py"])


class TestFileDiscovery(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name).resolve()
        for relative in ("src/app.py", "src/server.go", "src/notes.txt",
                         "node_modules/lib/index.js", "web/ui.tsx"):
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x\n")
        self.discovery = FileDiscovery(str(self.root))

    def test_glob_patterns_skip_default_ignores(self):
        files = self.discovery.resolve(patterns=["**/*.{py,go,js,tsx}"])

        relative = sorted(Path(f).relative_to(self.root).as_posix() for f in files)
        self.assertEqual(relative, ["src/app.py", "src/server.go", "web/ui.tsx"])
        self.assertTrue(all(Path(f).is_absolute() for f in files))

    def test_selection_minus_exclusions(self):
        files = self.discovery.resolve(
            selected_files=["src/app.py", "src/server.go", str(self.root / "src/app.py")],
            excluded_files=["src/server.go"],
            patterns=["**/*.tsx"],
        )

        self.assertEqual(files, [str(self.root / "src/app.py")])

    def test_missing_selected_files_are_skipped(self):
        log = logging.getLogger(_DISCOVERY_LOGGER)
        old_level = log.level
        log.setLevel(logging.CRITICAL)
        try:
            files = self.discovery.resolve(selected_files=["src/missing.py", "src/app.py"])
        finally:
            log.setLevel(old_level)

        self.assertEqual(files, [str(self.root / "src/app.py")])

    def test_no_matches_gives_empty_list(self):
        self.assertEqual(self.discovery.resolve(patterns=["**/*.java"]), [])
