"""
Semantic Code Layers

Multi-language pipeline that turns a source tree into layered, searchable
records: raw code (L0), dependencies (L1) and semantic enrichment (L2).
Supports Go, Java, Python and TypeScript/JavaScript.
"""

from .semantic import PipelineOrchestrator, PipelineConfig, load_pipeline_config, AiItem

__all__ = [
    'PipelineOrchestrator',
    'PipelineConfig',
    'load_pipeline_config',
    'AiItem',
]
