"""
Semantic Pipeline Configuration

Configuration dataclass, enums and constants for the semantic layering pipeline.

Settings are loaded from config/pipeline.yaml (or SEMANTIC_PIPELINE_CONFIG env var);
API credentials come from the environment (.env supported).
"""

import os
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class Language(Enum):
    """Languages handled by the parsing layer"""
    GO = "go"
    JAVA = "java"
    PYTHON = "python"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"


class ItemType(Enum):
    """Construct kinds an AiItem can describe"""
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    STRUCT = "struct"
    INTERFACE = "interface"
    TYPE = "type"
    ENUM = "enum"
    CONSTRUCTOR = "constructor"
    ANNOTATION = "annotation"


class StageName(Enum):
    """Pipeline stages, in execution order"""
    PARSING = "parsing"
    DEPENDENCIES = "dependencies"
    ENRICHMENT = "enrichment"
    VECTORIZATION = "vectorization"
    INDEXING = "indexing"


STAGE_ORDER = [stage.value for stage in StageName]

# File extension to language mapping (.js/.jsx share the TypeScript parser)
EXTENSION_MAPPING = {
    '.go': Language.GO,
    '.java': Language.JAVA,
    '.py': Language.PYTHON,
    '.ts': Language.TYPESCRIPT,
    '.tsx': Language.TYPESCRIPT,
    '.js': Language.JAVASCRIPT,
    '.jsx': Language.JAVASCRIPT,
}

DEFAULT_IGNORE_PATTERNS = [
    'node_modules',
    'dist',
    'build',
    '.git',
    '__pycache__',
    'venv',
    '.venv',
]

DEFAULT_FILE_PATTERNS = ['**/*.{py,ts,tsx,js,jsx,go,java}']


@dataclass
class PipelineConfig:
    """Configuration for the semantic pipeline."""

    # Project root; item file paths are stored relative to it
    project_path: str = "."

    # File selection: explicit selection wins over glob patterns
    file_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))
    ignore_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    selected_files: List[str] = field(default_factory=list)
    excluded_files: List[str] = field(default_factory=list)

    # Batch sizes per stage
    enrichment_batch_size: int = 5
    vectorization_batch_size: int = 10
    indexing_batch_size: int = 100

    # Fixed inter-batch delays (seconds)
    enrichment_delay: float = 0.1
    vectorization_delay: float = 0.2

    # Semantic enrichment (OpenAI chat completions)
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 300
    llm_timeout: int = 60
    max_retries: int = 3
    max_code_chars: int = 2000

    # Vectorization
    embedding_model: str = "text-embedding-3-small"
    embedding_provider: Optional[str] = None  # openai | local, inferred from model when unset
    embedding_size: int = 1536
    local_embedding_size: int = 384
    max_text_chars: int = 8000

    # Indexing
    index_type: str = "qdrant"  # qdrant | simple
    index_path: str = "./semantic_index"
    collection_name: str = "semantic_items"

    # Stage result persistence
    checkpoint_dir: Optional[str] = None

    @property
    def project_root(self) -> Path:
        return Path(self.project_path).resolve()

    @property
    def openai_api_key(self) -> Optional[str]:
        return os.getenv("OPENAI_API_KEY")

    @property
    def openai_base_url(self) -> Optional[str]:
        return os.getenv("OPENAI_BASE_URL")


def _resolve_config_path(config_path: Optional[Path] = None) -> Path:
    """
    Resolve the configuration file path.

    Priority:
    1. Explicit config_path parameter
    2. SEMANTIC_PIPELINE_CONFIG environment variable
    3. Default: config/pipeline.yaml (relative to the working directory)
    """
    if config_path:
        return Path(config_path)

    env_path = os.getenv('SEMANTIC_PIPELINE_CONFIG')
    if env_path:
        return Path(env_path)

    return Path('config') / 'pipeline.yaml'


def load_pipeline_config(config_path: Optional[Path] = None, **overrides: Any) -> PipelineConfig:
    """
    Load PipelineConfig from YAML, applying keyword overrides on top.

    A missing file yields defaults. Unknown keys are ignored with a warning.

    Args:
        config_path: Optional explicit path to the YAML file
        **overrides: Field values that take precedence over the file (None values are ignored)

    Returns:
        PipelineConfig instance
    """
    load_dotenv()

    path = _resolve_config_path(config_path)
    data: Dict[str, Any] = {}

    if path.exists():
        with open(path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Pipeline config must be a mapping: {path}")
        data.update(loaded.get('pipeline', loaded))
        logger.info(f"📋 Loaded pipeline config from {path}")
    elif config_path:
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    else:
        logger.debug(f"No pipeline config at {path}, using defaults")

    data.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"⚠️ Ignoring unknown config keys: {', '.join(unknown)}")

    return PipelineConfig(**{k: v for k, v in data.items() if k in known})
