"""
Fake implementations for testing.

These test doubles stand in for the sentence-transformers model so unit
tests run without downloading weights. Embeddings are a bag of words: each
lower-cased token maps to a fixed pseudo-random direction, and a text's
vector is the normalized sum of its token directions. Texts that share
words are therefore close, unrelated texts are nearly orthogonal.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import threading
import time

import numpy as np

from track_search.embedding.provider import compose_track_text
from track_search.search.exceptions import EmbeddingError, EmptyInputError, ModelLoadError
from track_search.search.models import EMBEDDING_DIMENSION, TrackRecord

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def _token_direction(token: str, dimension: int) -> np.ndarray:
    # SECURITY: MD5 used only for test double determinism, not for security.
    seed = int(hashlib.md5(token.encode()).hexdigest()[:8], 16)  # noqa: S324
    return np.random.default_rng(seed).standard_normal(dimension)


def hashed_embedding(text: str, dimension: int = EMBEDDING_DIMENSION) -> list[float]:
    """Deterministic unit-norm bag-of-words embedding."""
    tokens = _TOKEN_PATTERN.findall(text.lower()) or [text]
    vector = np.zeros(dimension)
    for token in tokens:
        vector += _token_direction(token, dimension)
    return (vector / np.linalg.norm(vector)).tolist()


class FakeSentenceModel:
    """Stands in for a SentenceTransformer instance."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION) -> None:
        self._dimension = dimension
        self.encode_calls = 0

    def get_sentence_embedding_dimension(self) -> int:
        return self._dimension

    def encode(
        self,
        text: str,
        convert_to_numpy: bool = True,
        normalize_embeddings: bool = False,
    ) -> np.ndarray:
        self.encode_calls += 1
        return np.asarray(hashed_embedding(text, self._dimension), dtype=np.float32)


class CountingLoader:
    """Model loader that counts calls and can be made slow or failing."""

    def __init__(
        self,
        delay: float = 0.0,
        error: Exception | None = None,
        dimension: int = EMBEDDING_DIMENSION,
    ) -> None:
        self.delay = delay
        self.error = error
        self.dimension = dimension
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, model_name: str) -> FakeSentenceModel:
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return FakeSentenceModel(self.dimension)


class FakeEmbeddingProvider:
    """Fake embedding provider for testing.

    Implements the same interface as EmbeddingProvider (duck typing).
    """

    def __init__(
        self,
        dimension: int = EMBEDDING_DIMENSION,
        fail_load: bool = False,
        failing_ids: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        """Initialize the fake.

        Args:
            dimension: Embedding width
            fail_load: Raise ModelLoadError from initialize()
            failing_ids: Track ids whose metadata embedding fails
            delay: Seconds each embedding call takes
        """
        self._dimension = dimension
        self._fail_load = fail_load
        self._failing_ids = failing_ids or set()
        self._delay = delay
        self._ready = False
        self.initialize_calls = 0
        self.embed_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def model_name(self) -> str:
        return "fake-bag-of-words"

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self.initialize_calls += 1
        await asyncio.sleep(0)  # Yield to event loop
        if self._fail_load:
            raise ModelLoadError("Simulated model load failure", model_name=self.model_name)
        self._ready = True

    async def embed_text(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmptyInputError()
        await self.initialize()

        self.embed_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay)
            return hashed_embedding(text.strip(), self._dimension)
        finally:
            self.in_flight -= 1

    async def embed_track_metadata(self, record: TrackRecord) -> list[float]:
        if record.id in self._failing_ids:
            await asyncio.sleep(0)  # Yield to event loop
            raise EmbeddingError(f"Simulated embedding failure for '{record.id}'")
        return await self.embed_text(compose_track_text(record))
