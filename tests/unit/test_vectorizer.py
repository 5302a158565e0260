"""
Unit tests for Vectorizer: local hashing provider and mocked OpenAI embeddings.

Run: python -m pytest tests/unit/test_vectorizer.py -v
"""
import logging
import sys
from pathlib import Path
from unittest import TestCase
from unittest.mock import MagicMock, patch

import numpy as np

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.services.vectorizer import Vectorizer, infer_provider

_VECTORIZER_LOGGER = "modules.semantic.services.vectorizer"


def make_embedding_response(vectors):
    return MagicMock(data=[MagicMock(embedding=list(v)) for v in vectors])


class TestProviderSelection(TestCase):

    def test_infer_provider(self):
        self.assertEqual(infer_provider("text-embedding-3-small"), "openai")
        self.assertEqual(infer_provider("hashing"), "local")

    def test_openai_failure_falls_back_to_local(self):
        vectorizer = Vectorizer(model="text-embedding-3-small")

        log = logging.getLogger(_VECTORIZER_LOGGER)
        old_level = log.level
        log.setLevel(logging.CRITICAL)
        try:
            with patch.dict("os.environ", {}, clear=True):
                dimension = vectorizer.initialize()
        finally:
            log.setLevel(old_level)

        self.assertEqual(dimension, 384)
        self.assertEqual(vectorizer.provider, "local")

    def test_dimension_requires_initialize(self):
        with self.assertRaises(RuntimeError):
            Vectorizer(model="hashing").dimension


class TestLocalVectorizer(TestCase):

    def test_embeddings_are_normalized_and_sized(self):
        vectorizer = Vectorizer(model="hashing", local_embedding_size=64)
        self.assertEqual(vectorizer.initialize(), 64)
        self.assertEqual(vectorizer.initialize(), 64)

        vectors = vectorizer.create_embeddings(["def add(a, b): return a + b", "class UserRepository"])

        self.assertEqual(len(vectors), 2)
        for vector in vectors:
            self.assertEqual(vector.shape, (64,))
            self.assertEqual(vector.dtype, np.float32)
            self.assertAlmostEqual(float(np.linalg.norm(vector)), 1.0, places=5)

    def test_same_text_same_vector(self):
        vectorizer = Vectorizer(model="hashing")
        first, second = vectorizer.create_embeddings(["parse config  file", "parse config file"])
        np.testing.assert_array_equal(first, second)

    def test_empty_batch(self):
        self.assertEqual(Vectorizer(model="hashing").create_embeddings([]), [])


class TestRemoteVectorizer(TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.vectorizer = Vectorizer(model="text-embedding-3-small", embedding_size=4, client=self.client)
        patcher = patch("modules.semantic.services.vectorizer.time.sleep")
        self.sleep = patcher.start()
        self.addCleanup(patcher.stop)

    def test_requests_configured_dimension(self):
        self.client.embeddings.create.return_value = make_embedding_response([[0.1, 0.2, 0.3, 0.4]])

        vectors = self.vectorizer.create_embeddings(["hello   world"])

        self.assertEqual(self.vectorizer.dimension, 4)
        np.testing.assert_allclose(vectors[0], [0.1, 0.2, 0.3, 0.4], rtol=1e-6)
        kwargs = self.client.embeddings.create.call_args.kwargs
        self.assertEqual(kwargs['dimensions'], 4)
        self.assertEqual(kwargs['input'], ["hello world"])

    def test_retries_transient_failure(self):
        self.client.embeddings.create.side_effect = [
            RuntimeError("timeout"),
            make_embedding_response([[1.0, 0.0, 0.0, 0.0]]),
        ]

        log = logging.getLogger(_VECTORIZER_LOGGER)
        old_level = log.level
        log.setLevel(logging.CRITICAL)
        try:
            vectors = self.vectorizer.create_embeddings(["text"])
        finally:
            log.setLevel(old_level)

        self.assertEqual(len(vectors), 1)
        self.assertEqual(self.client.embeddings.create.call_count, 2)

    def test_invalid_embeddings_are_rejected(self):
        self.client.embeddings.create.return_value = make_embedding_response([[float('nan'), 0.0, 0.0, 0.0]])
        with self.assertRaises(ValueError):
            self.vectorizer.create_embeddings(["text"])

        self.client.embeddings.create.return_value = make_embedding_response([[0.1, 0.2]])
        with self.assertRaises(ValueError):
            self.vectorizer.create_embeddings(["text"])

    def test_count_mismatch_is_rejected(self):
        self.client.embeddings.create.return_value = make_embedding_response([[0.1, 0.2, 0.3, 0.4]])
        with self.assertRaises(ValueError):
            self.vectorizer.create_embeddings(["one", "two"])
