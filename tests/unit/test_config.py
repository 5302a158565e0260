"""
Unit tests for pipeline configuration loading.

Run: python -m pytest tests/unit/test_config.py -v
"""
import logging
import sys
import tempfile
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.core.config import (
    DEFAULT_IGNORE_PATTERNS,
    STAGE_ORDER,
    PipelineConfig,
    load_pipeline_config,
)

_CONFIG_LOGGER = "modules.semantic.core.config"


class TestPipelineConfigDefaults(TestCase):

    def test_defaults(self):
        config = PipelineConfig()
        self.assertEqual(config.enrichment_batch_size, 5)
        self.assertEqual(config.vectorization_batch_size, 10)
        self.assertEqual(config.indexing_batch_size, 100)
        self.assertEqual(config.enrichment_delay, 0.1)
        self.assertEqual(config.vectorization_delay, 0.2)
        self.assertEqual(config.ignore_patterns, DEFAULT_IGNORE_PATTERNS)
        self.assertIsNot(config.ignore_patterns, DEFAULT_IGNORE_PATTERNS)

    def test_stage_order(self):
        self.assertEqual(STAGE_ORDER, ['parsing', 'dependencies', 'enrichment', 'vectorization', 'indexing'])


class TestLoadPipelineConfig(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.config_path = Path(self.tmp.name) / "pipeline.yaml"

    def test_yaml_values_and_overrides(self):
        self.config_path.write_text(
            "pipeline:\n"
            "  enrichment_batch_size: 2\n"
            "  index_type: simple\n"
        )

        with patch("modules.semantic.core.config.load_dotenv"):
            config = load_pipeline_config(self.config_path, index_type="qdrant", project_path=None)

        self.assertEqual(config.enrichment_batch_size, 2)
        self.assertEqual(config.index_type, "qdrant")
        self.assertEqual(config.project_path, ".")

    def test_unknown_keys_are_ignored(self):
        self.config_path.write_text("vectorization_batch_size: 4\nnot_a_setting: true\n")

        with patch("modules.semantic.core.config.load_dotenv"):
            log = logging.getLogger(_CONFIG_LOGGER)
            old_level = log.level
            log.setLevel(logging.CRITICAL)
            try:
                config = load_pipeline_config(self.config_path)
            finally:
                log.setLevel(old_level)

        self.assertEqual(config.vectorization_batch_size, 4)
        self.assertFalse(hasattr(config, 'not_a_setting'))

    def test_env_var_selects_config_file(self):
        self.config_path.write_text("indexing_batch_size: 7\n")

        with patch("modules.semantic.core.config.load_dotenv"):
            with patch.dict("os.environ", {"SEMANTIC_PIPELINE_CONFIG": str(self.config_path)}):
                config = load_pipeline_config()

        self.assertEqual(config.indexing_batch_size, 7)

    def test_missing_explicit_file_raises(self):
        with patch("modules.semantic.core.config.load_dotenv"):
            with self.assertRaises(FileNotFoundError):
                load_pipeline_config(Path(self.tmp.name) / "missing.yaml")
