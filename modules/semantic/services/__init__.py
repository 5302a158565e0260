"""
Pipeline Services

External collaborators: LLM enrichment, embeddings and the similarity index.
"""

from .semantic_enricher import SemanticEnricher
from .vectorizer import Vectorizer
from .index_builder import IndexBuilder

__all__ = [
    'SemanticEnricher',
    'Vectorizer',
    'IndexBuilder',
]
