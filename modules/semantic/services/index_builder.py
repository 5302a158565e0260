"""
Index Builder

Builds and persists the similarity-search index over item vectors.

Backends:
- qdrant: local on-disk Qdrant collection (qdrant-client embedded mode)
- simple: in-memory numpy matrix with cosine search, saved as .npy + JSON

Vector ordinals are contiguous from 0 and double as Qdrant point ids, so the
IndexEntry side-table maps a search hit straight back to its source construct.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from ..core.ai_item import IndexEntry

logger = logging.getLogger(__name__)

INDEX_QDRANT = "qdrant"
INDEX_SIMPLE = "simple"
SUPPORTED_INDEX_TYPES = (INDEX_QDRANT, INDEX_SIMPLE)


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize rows; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class IndexBackend(Protocol):
    """Operations every index backend provides."""

    def initialize(self, dimension: int) -> None: ...
    def add_vectors(self, vectors: np.ndarray, start_offset: int) -> None: ...
    def optimize(self) -> None: ...
    def save(self) -> str: ...
    def load(self) -> None: ...
    def search(self, query: np.ndarray, k: int) -> List[Tuple[int, float]]: ...
    def count(self) -> int: ...
    def close(self) -> None: ...


class SimpleIndex:
    """Brute-force cosine index kept as a numpy matrix."""

    def __init__(self, index_path: Path):
        self.index_path = index_path
        self.dimension: Optional[int] = None
        self._chunks: List[np.ndarray] = []
        self._matrix: Optional[np.ndarray] = None
        self._normalized: Optional[np.ndarray] = None

    @property
    def vectors_file(self) -> Path:
        return self.index_path.with_name(self.index_path.name + '.npy')

    @property
    def meta_file(self) -> Path:
        return self.index_path.with_name(self.index_path.name + '.meta.json')

    def initialize(self, dimension: int) -> None:
        self.dimension = dimension
        self._chunks = []
        self._matrix = np.zeros((0, dimension), dtype=np.float32)
        self._normalized = None

    def count(self) -> int:
        return int(self._current().shape[0])

    def add_vectors(self, vectors: np.ndarray, start_offset: int) -> None:
        if start_offset != self.count():
            raise ValueError(f"Non-contiguous add: start_offset {start_offset}, index holds {self.count()}")
        self._chunks.append(vectors.astype(np.float32))
        self._normalized = None

    def optimize(self) -> None:
        self._matrix = self._current()
        self._chunks = []
        self._normalized = normalize_rows(self._matrix)

    def save(self) -> str:
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        matrix = self._current()
        np.save(self.vectors_file, matrix)
        with open(self.meta_file, 'w') as f:
            json.dump({
                'index_type': INDEX_SIMPLE,
                'dimension': self.dimension,
                'count': int(matrix.shape[0]),
                'created_at': datetime.now().isoformat(),
            }, f, indent=2)
        return str(self.vectors_file)

    def load(self) -> None:
        with open(self.meta_file, 'r') as f:
            meta = json.load(f)
        self.dimension = meta['dimension']
        self._matrix = np.load(self.vectors_file).astype(np.float32)
        self._chunks = []
        self._normalized = normalize_rows(self._matrix)

    def search(self, query: np.ndarray, k: int) -> List[Tuple[int, float]]:
        if self._normalized is None:
            self.optimize()
        if self._normalized.shape[0] == 0:
            return []
        scores = self._normalized @ normalize_rows(query.astype(np.float32).reshape(1, -1))[0]
        top = np.argsort(-scores)[:k]
        return [(int(i), float(scores[i])) for i in top]

    def _current(self) -> np.ndarray:
        if self._matrix is None:
            raise RuntimeError("Index not initialized")
        if self._chunks:
            self._matrix = np.vstack([self._matrix] + self._chunks)
            self._chunks = []
        return self._matrix

    def close(self) -> None:
        # In-memory index, nothing to release
        pass


class QdrantIndex:
    """Embedded Qdrant collection stored under index_path."""

    def __init__(self, index_path: Path, collection_name: str):
        self.index_path = index_path
        self.collection_name = collection_name
        self.dimension: Optional[int] = None
        self._client: Optional[QdrantClient] = None

    @property
    def client(self) -> QdrantClient:
        """Lazy-open the local Qdrant storage on first access."""
        if self._client is None:
            self.index_path.mkdir(parents=True, exist_ok=True)
            self._client = QdrantClient(path=str(self.index_path))
        return self._client

    def initialize(self, dimension: int) -> None:
        self.dimension = dimension
        if self.client.collection_exists(self.collection_name):
            logger.info(f"🗑️ Deleting existing collection: {self.collection_name}")
            self.client.delete_collection(self.collection_name)

        # Vectors are normalized before upsert, so dot product equals cosine
        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=dimension, distance=Distance.DOT),
        )
        logger.info(f"📦 Collection '{self.collection_name}' created with {dimension}D vectors")

    def count(self) -> int:
        return self.client.count(self.collection_name, exact=True).count

    def add_vectors(self, vectors: np.ndarray, start_offset: int) -> None:
        normalized = normalize_rows(vectors.astype(np.float32))
        points = [
            PointStruct(id=start_offset + i, vector=row.tolist(), payload={'ordinal': start_offset + i})
            for i, row in enumerate(normalized)
        ]
        self.client.upsert(collection_name=self.collection_name, points=points)

    def optimize(self) -> None:
        logger.info("⚙️ Local Qdrant collection needs no explicit optimization")

    def save(self) -> str:
        # Embedded Qdrant persists on every write
        return str(self.index_path)

    def load(self) -> None:
        info = self.client.get_collection(self.collection_name)
        self.dimension = info.config.params.vectors.size

    def search(self, query: np.ndarray, k: int) -> List[Tuple[int, float]]:
        vector = normalize_rows(query.astype(np.float32).reshape(1, -1))[0]
        hits = self.client.query_points(
            collection_name=self.collection_name,
            query=vector.tolist(),
            limit=k,
        ).points
        return [(int(hit.id), float(hit.score)) for hit in hits]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class IndexBuilder:
    """
    Facade over the index backends used by the indexing stage.

    Responsibilities:
    - Create the configured backend (unknown types fall back to simple)
    - Track dimension and vector count
    - Persist the index and its IndexEntry side-table
    - Map search hits back to IndexEntry records
    """

    def __init__(
        self,
        index_type: str = INDEX_QDRANT,
        index_path: str = "./semantic_index",
        collection_name: str = "semantic_items"
    ):
        if index_type not in SUPPORTED_INDEX_TYPES:
            logger.warning(f"⚠️ Unknown index type '{index_type}', using '{INDEX_SIMPLE}'")
            index_type = INDEX_SIMPLE

        self.index_type = index_type
        self.index_path = Path(index_path)
        self.dimension: Optional[int] = None
        self.entries: List[IndexEntry] = []

        if index_type == INDEX_QDRANT:
            self.backend: IndexBackend = QdrantIndex(self.index_path, collection_name)
        else:
            self.backend = SimpleIndex(self.index_path)

        logger.info(f"🗂️ Index builder ready ({self.index_type} at {self.index_path})")

    @property
    def entries_file(self) -> Path:
        return self.index_path.with_name(self.index_path.name + '.entries.json')

    def initialize(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError(f"Index dimension must be positive, got {dimension}")
        self.dimension = dimension
        self.backend.initialize(dimension)

    def add_vectors(self, vectors: Sequence[np.ndarray], start_offset: int) -> None:
        """Add a batch whose first vector gets ordinal start_offset."""
        if self.dimension is None:
            raise RuntimeError("Index not initialized; call initialize() first")
        if not len(vectors):
            return
        matrix = np.vstack([np.asarray(v, dtype=np.float32).reshape(1, -1) for v in vectors])
        if matrix.shape[1] != self.dimension:
            raise ValueError(f"Vector dimension mismatch: expected {self.dimension}, got {matrix.shape[1]}")
        self.backend.add_vectors(matrix, start_offset)

    def optimize(self) -> None:
        self.backend.optimize()

    def save(self) -> str:
        path = self.backend.save()
        logger.info(f"💾 Index saved: {path}")
        return path

    def save_metadata(self, entries: List[IndexEntry]) -> str:
        """Persist the IndexEntry side-table next to the index."""
        self.entries = list(entries)
        self.entries_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.entries_file, 'w') as f:
            json.dump([entry.to_dict() for entry in self.entries], f, indent=2)
        return str(self.entries_file)

    def load(self) -> None:
        """Load a previously saved index and side-table."""
        self.backend.load()
        self.dimension = self.backend.dimension
        if self.entries_file.exists():
            with open(self.entries_file, 'r') as f:
                self.entries = [IndexEntry(**entry) for entry in json.load(f)]

    def search(self, query_vector: Sequence[float], k: int = 10) -> List[Dict[str, Any]]:
        """Top-k hits as dicts with ordinal, score and the IndexEntry fields when known."""
        hits = self.backend.search(np.asarray(query_vector, dtype=np.float32), k)
        by_ordinal = {entry.vector_ordinal: entry for entry in self.entries}

        results = []
        for ordinal, score in hits:
            result: Dict[str, Any] = {'vector_ordinal': ordinal, 'score': score}
            entry = by_ordinal.get(ordinal)
            if entry is not None:
                result.update(entry.to_dict())
            results.append(result)
        return results

    def count(self) -> int:
        return self.backend.count()

    def close(self) -> None:
        """Release backend storage (the embedded Qdrant lock); later calls reopen it."""
        self.backend.close()


def path_size(path: str) -> int:
    """Size in bytes of a file, or of every file under a directory."""
    target = Path(path)
    if target.is_file():
        return target.stat().st_size
    if target.is_dir():
        return sum(p.stat().st_size for p in target.rglob('*') if p.is_file())
    return 0
