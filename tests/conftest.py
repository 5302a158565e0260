"""
Pytest fixtures for semantic pipeline tests.

Use these to exercise parsing and stage flow without live LLM or embedding APIs.
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

# Ensure modules are importable from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def mock_enricher():
    """SemanticEnricher that describes every item by its id (no live API)."""
    enricher = MagicMock()
    enricher.enrich_batch.side_effect = lambda items: [
        {'description': f"Describes {item.id}", 'summary': item.type, 'tags': [item.language]}
        for item in items
    ]
    return enricher


@pytest.fixture
def mock_vectorizer():
    """Vectorizer with a fixed 8D dimension that returns ones vectors."""
    vectorizer = MagicMock()
    vectorizer.dimension = 8
    vectorizer.create_embeddings.side_effect = lambda texts: [np.ones(8, dtype=np.float32) for _ in texts]
    return vectorizer
