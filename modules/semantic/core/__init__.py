"""
Core Pipeline Components

Orchestration, data model, batching and checkpointing for the semantic pipeline.
"""

from .pipeline import PipelineOrchestrator
from .config import (
    PipelineConfig,
    Language,
    ItemType,
    StageName,
    STAGE_ORDER,
    EXTENSION_MAPPING,
    load_pipeline_config,
)
from .ai_item import AiItem, IndexEntry, DependencyGraph, create_ai_item, create_unique_id
from .errors import (
    PipelineError,
    FatalStageError,
    PerFileParseError,
    UnsupportedFileTypeError,
    PerItemAnalysisError,
    PerBatchEnrichmentError,
    PerBatchEmbeddingError,
)
from .progress import ProgressEvent, ProgressTracker, StepState
from .batch_processor import BatchProcessor
from .checkpoint_manager import CheckpointManager
from .file_discovery import FileDiscovery

__all__ = [
    'PipelineOrchestrator',
    'PipelineConfig',
    'Language',
    'ItemType',
    'StageName',
    'STAGE_ORDER',
    'EXTENSION_MAPPING',
    'load_pipeline_config',
    'AiItem',
    'IndexEntry',
    'DependencyGraph',
    'create_ai_item',
    'create_unique_id',
    'PipelineError',
    'FatalStageError',
    'PerFileParseError',
    'UnsupportedFileTypeError',
    'PerItemAnalysisError',
    'PerBatchEnrichmentError',
    'PerBatchEmbeddingError',
    'ProgressEvent',
    'ProgressTracker',
    'StepState',
    'BatchProcessor',
    'CheckpointManager',
    'FileDiscovery',
]
