"""
Vectorizer

Turns embedding texts into fixed-dimension vectors. Two providers:
- openai: OpenAI-compatible embeddings API
- local: scikit-learn HashingVectorizer (no network, 384 features)

The provider is inferred from the model name unless set explicitly; if the
OpenAI client cannot be created, the local provider is used instead.
"""

import logging
import os
import re
import time
from typing import List, Optional

import numpy as np
from openai import OpenAI
from sklearn.feature_extraction.text import HashingVectorizer

logger = logging.getLogger(__name__)

PROVIDER_OPENAI = "openai"
PROVIDER_LOCAL = "local"

_WHITESPACE = re.compile(r'\s+')


def infer_provider(model: str) -> str:
    return PROVIDER_OPENAI if model.startswith("text-embedding") else PROVIDER_LOCAL


class Vectorizer:
    """
    Embedding service for AiItem texts.

    Responsibilities:
    - Lazily and idempotently initialize a provider, fixing the dimension
    - Preprocess texts (collapse whitespace, truncate)
    - Generate and validate embeddings (no NaN/inf, correct dimension)
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        provider: Optional[str] = None,
        embedding_size: int = 1536,
        local_embedding_size: int = 384,
        max_text_chars: int = 8000,
        max_retries: int = 3,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize vectorizer (no network access until initialize()).

        Args:
            model: Embedding model name
            provider: 'openai' or 'local' (inferred from model when None)
            embedding_size: Dimension for the OpenAI provider
            local_embedding_size: Dimension for the local hashing provider
            max_text_chars: Characters kept per text after preprocessing
            max_retries: Attempts per batch for transient API failures
            api_key: API key (or set OPENAI_API_KEY env var)
            base_url: Optional OpenAI-compatible endpoint (or set OPENAI_BASE_URL)
            client: Pre-built OpenAI client
        """
        self.model = model
        self.provider = provider or infer_provider(model)
        self.embedding_size = embedding_size
        self.local_embedding_size = local_embedding_size
        self.max_text_chars = max_text_chars
        self.max_retries = max(1, max_retries)
        self._api_key = api_key
        self._base_url = base_url
        self.client = client
        self._hashing: Optional[HashingVectorizer] = None
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            raise RuntimeError("Vectorizer not initialized; call initialize() first")
        return self._dimension

    @property
    def initialized(self) -> bool:
        return self._dimension is not None

    def initialize(self) -> int:
        """
        Set up the provider once; later calls are no-ops.

        Returns:
            Embedding dimension
        """
        if self._dimension is not None:
            return self._dimension

        if self.provider == PROVIDER_OPENAI:
            try:
                if self.client is None:
                    api_key = self._api_key or os.getenv("OPENAI_API_KEY")
                    if not api_key:
                        raise ValueError("OPENAI_API_KEY environment variable required")
                    self.client = OpenAI(api_key=api_key, base_url=self._base_url or os.getenv("OPENAI_BASE_URL") or None)
                self._dimension = self.embedding_size
            except Exception as e:
                logger.warning(f"⚠️ OpenAI embeddings unavailable, falling back to local provider: {e}")
                self.provider = PROVIDER_LOCAL

        if self.provider == PROVIDER_LOCAL:
            self._hashing = HashingVectorizer(
                n_features=self.local_embedding_size,
                alternate_sign=False,
                norm='l2',
            )
            self._dimension = self.local_embedding_size
        elif self.provider != PROVIDER_OPENAI:
            raise ValueError(f"Unknown embedding provider: {self.provider}")

        logger.info(f"🔗 Vectorizer initialized")
        logger.info(f"   - Provider: {self.provider}")
        logger.info(f"   - Model: {self.model if self.provider == PROVIDER_OPENAI else 'hashing'}")
        logger.info(f"   - Embedding size: {self._dimension}D")
        return self._dimension

    def preprocess(self, text: str) -> str:
        return _WHITESPACE.sub(' ', text or '').strip()[:self.max_text_chars]

    def create_embeddings(self, texts: List[str]) -> List[np.ndarray]:
        """
        Embed a batch of texts.

        Args:
            texts: Texts to embed

        Returns:
            One float32 vector per text, in input order

        Raises:
            ValueError: If the provider returns invalid embeddings
        """
        self.initialize()
        prepared = [self.preprocess(text) for text in texts]
        if not prepared:
            return []

        if self.provider == PROVIDER_LOCAL:
            matrix = self._hashing.transform(prepared).toarray().astype(np.float32)
            return [row for row in matrix]

        embeddings = self._embed_remote(prepared)
        if len(embeddings) != len(prepared):
            raise ValueError(f"Expected {len(prepared)} embeddings, got {len(embeddings)}")
        for embedding in embeddings:
            self.validate_embedding(embedding)
        return embeddings

    def _embed_remote(self, texts: List[str]) -> List[np.ndarray]:
        kwargs = {'input': texts, 'model': self.model, 'encoding_format': 'float'}
        if self.model.startswith("text-embedding-3"):
            kwargs['dimensions'] = self.embedding_size

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                response = self.client.embeddings.create(**kwargs)
                elapsed_ms = (time.time() - start_time) * 1000
                logger.debug(f"Embedded {len(texts)} texts ({elapsed_ms:.1f}ms)")
                return [np.asarray(obj.embedding, dtype=np.float32) for obj in response.data]
            except Exception as e:
                logger.warning(f"⚠️ Embedding request failed on attempt {attempt + 1}/{self.max_retries}: "
                               f"{type(e).__name__}: {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(min(2 ** attempt, 8))
                    continue
                raise

    def validate_embedding(self, embedding: np.ndarray) -> None:
        """Reject embeddings with NaN/inf values or the wrong dimension."""
        if not np.all(np.isfinite(embedding)):
            raise ValueError("Embedding contains NaN or infinite values")
        if embedding.shape[0] != self.dimension:
            raise ValueError(f"Embedding dimension mismatch: expected {self.dimension}, got {embedding.shape[0]}")
