"""
Semantic Pipeline

Staged pipeline: parsing -> dependencies -> enrichment -> vectorization -> indexing.
"""

from .core.pipeline import PipelineOrchestrator
from .core.config import (
    PipelineConfig,
    STAGE_ORDER,
    load_pipeline_config,
)
from .core.ai_item import AiItem, IndexEntry, DependencyGraph

__all__ = [
    'PipelineOrchestrator',
    'PipelineConfig',
    'STAGE_ORDER',
    'load_pipeline_config',
    'AiItem',
    'IndexEntry',
    'DependencyGraph',
]
