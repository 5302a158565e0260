"""
Unit tests for IndexBuilder: simple numpy backend and embedded Qdrant.

Run: python -m pytest tests/unit/test_index_builder.py -v
"""
import json
import logging
import sys
import tempfile
from pathlib import Path
from unittest import TestCase

import numpy as np

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.core.ai_item import IndexEntry
from modules.semantic.services.index_builder import IndexBuilder, SimpleIndex, path_size

_INDEX_LOGGER = "modules.semantic.services.index_builder"

VECTORS = [
    np.array([1.0, 0.0, 0.0], dtype=np.float32),
    np.array([0.0, 2.0, 0.0], dtype=np.float32),
    np.array([0.0, 0.0, 3.0], dtype=np.float32),
]


def make_entries():
    return [
        IndexEntry(vector_ordinal=0, id="a.f_L1", file_path="a.py", type="function", language="python"),
        IndexEntry(vector_ordinal=1, id="a.g_L5", file_path="a.py", type="function", language="python"),
        IndexEntry(vector_ordinal=2, id="b.C_L1", file_path="b.py", type="class", language="python"),
    ]


class TestSimpleIndexBuilder(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.index_path = Path(self.tmp.name) / "index" / "semantic"

    def build(self):
        builder = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        builder.initialize(3)
        builder.add_vectors(VECTORS[:2], 0)
        builder.add_vectors(VECTORS[2:], 2)
        builder.optimize()
        return builder

    def test_search_maps_hits_to_entries(self):
        builder = self.build()
        builder.save_metadata(make_entries())

        hits = builder.search([0.0, 5.0, 0.1], k=2)

        self.assertEqual(builder.count(), 3)
        self.assertEqual(hits[0]['vector_ordinal'], 1)
        self.assertEqual(hits[0]['id'], "a.g_L5")
        self.assertAlmostEqual(hits[0]['score'], 0.9998, places=3)
        self.assertEqual(len(hits), 2)

    def test_save_and_load(self):
        builder = self.build()
        index_file = builder.save()
        entries_file = builder.save_metadata(make_entries())

        self.assertTrue(Path(index_file).exists())
        self.assertGreater(path_size(index_file), 0)
        with open(entries_file) as f:
            self.assertEqual([e['id'] for e in json.load(f)], ["a.f_L1", "a.g_L5", "b.C_L1"])

        loaded = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        loaded.load()
        self.assertEqual(loaded.dimension, 3)
        self.assertEqual(loaded.count(), 3)
        self.assertEqual(loaded.search([0.0, 0.0, 1.0], k=1)[0]['id'], "b.C_L1")

    def test_rejects_non_contiguous_offsets(self):
        builder = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        builder.initialize(3)
        builder.add_vectors(VECTORS[:1], 0)
        with self.assertRaises(ValueError):
            builder.add_vectors(VECTORS[1:], 5)

    def test_rejects_dimension_mismatch(self):
        builder = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        builder.initialize(4)
        with self.assertRaises(ValueError):
            builder.add_vectors(VECTORS, 0)

    def test_requires_initialize(self):
        builder = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        with self.assertRaises(RuntimeError):
            builder.add_vectors(VECTORS, 0)
        with self.assertRaises(ValueError):
            builder.initialize(0)

    def test_unknown_type_uses_simple(self):
        log = logging.getLogger(_INDEX_LOGGER)
        old_level = log.level
        log.setLevel(logging.CRITICAL)
        try:
            builder = IndexBuilder(index_type="faiss", index_path=str(self.index_path))
        finally:
            log.setLevel(old_level)

        self.assertEqual(builder.index_type, "simple")
        self.assertIsInstance(builder.backend, SimpleIndex)

    def test_zero_vectors_stay_searchable(self):
        builder = IndexBuilder(index_type="simple", index_path=str(self.index_path))
        builder.initialize(3)
        builder.add_vectors([np.zeros(3, dtype=np.float32), VECTORS[0]], 0)

        hits = builder.search([1.0, 0.0, 0.0], k=2)

        self.assertEqual([h['vector_ordinal'] for h in hits], [1, 0])
        self.assertEqual(hits[1]['score'], 0.0)


class TestQdrantIndexBuilder(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.builder = IndexBuilder(
            index_type="qdrant",
            index_path=str(Path(self.tmp.name) / "qdrant"),
            collection_name="test_items",
        )
        self.addCleanup(self.builder.backend.close)

    def test_upsert_and_search(self):
        self.builder.initialize(3)
        self.builder.add_vectors(VECTORS[:2], 0)
        self.builder.add_vectors(VECTORS[2:], 2)
        self.builder.optimize()
        self.builder.save_metadata(make_entries())

        self.assertEqual(self.builder.count(), 3)
        hits = self.builder.search([0.0, 0.0, 2.0], k=1)
        self.assertEqual(hits[0]['vector_ordinal'], 2)
        self.assertEqual(hits[0]['id'], "b.C_L1")
        self.assertAlmostEqual(hits[0]['score'], 1.0, places=4)

    def test_initialize_recreates_collection(self):
        self.builder.initialize(3)
        self.builder.add_vectors(VECTORS, 0)
        self.builder.initialize(3)
        self.assertEqual(self.builder.count(), 0)

    def test_closed_storage_can_be_reopened_in_process(self):
        self.builder.initialize(3)
        self.builder.add_vectors(VECTORS, 0)
        self.builder.save_metadata(make_entries())
        self.builder.close()

        reopened = IndexBuilder(
            index_type="qdrant",
            index_path=str(self.builder.index_path),
            collection_name="test_items",
        )
        self.addCleanup(reopened.close)
        reopened.load()

        self.assertEqual(reopened.dimension, 3)
        self.assertEqual(reopened.count(), 3)
        self.assertEqual(reopened.search([1.0, 0.0, 0.0], k=1)[0]['id'], "a.f_L1")
