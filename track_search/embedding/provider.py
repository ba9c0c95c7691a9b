"""
Sentence-embedding provider for track metadata and search queries.

One provider instance owns one sentence-transformers model for the whole
process. It is constructed once at start-up and injected into every
component that needs embeddings.

Initialization:
- The first initialize() call starts a single shared load task; concurrent
  callers await that same task, so the model is never loaded twice.
- The shared task is shielded: cancelling one waiter does not cancel the load.
- On failure every waiter observes the same ModelLoadError and the task is
  cleared, so a later independent call may attempt the load again. There is
  no automatic retry.

Inference:
- Runs on a single-worker thread pool, which serializes calls into the
  model and keeps the event loop free while encoding.
- Vectors are mean-pooled and L2-normalized by the model, then normalized
  again in float64 so |v| == 1 within 1e-5.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol, runtime_checkable

import numpy as np

from track_search.search.exceptions import EmbeddingError, EmptyInputError, ModelLoadError
from track_search.search.models import EMBEDDING_DIMENSION, TrackRecord

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


# =============================================================================
# Protocol for Duck Typing
# =============================================================================


@runtime_checkable
class EmbeddingProviderProtocol(Protocol):
    """Interface shared by EmbeddingProvider and test fakes."""

    @property
    def is_ready(self) -> bool:
        """Whether the model has been loaded."""
        ...

    async def initialize(self) -> None:
        """Load the model once."""
        ...

    async def embed_text(self, text: str) -> list[float]:
        """Embed free text."""
        ...

    async def embed_track_metadata(self, record: TrackRecord) -> list[float]:
        """Embed a track's text fields."""
        ...


# =============================================================================
# Helpers
# =============================================================================


def load_sentence_transformer(model_name: str) -> Any:
    """Load a sentence-transformers model. Blocking; runs in a worker thread."""
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


def compose_track_text(record: TrackRecord) -> str:
    """Build the text embedded for a track.

    Order is title, title, primary artist, genre, description. The title is
    repeated to weight it higher in the mean-pooled representation. Absent
    or blank fields are skipped.
    """
    parts = [
        record.title,
        record.title,
        record.primary_artist,
        record.genre,
        record.description,
    ]
    return " ".join(part.strip() for part in parts if part and part.strip())


def _model_dimension(model: Any) -> int | None:
    getter = getattr(model, "get_sentence_embedding_dimension", None)
    if not callable(getter):
        return None
    dimension = getter()
    return dimension if isinstance(dimension, int) else None


# =============================================================================
# EmbeddingProvider
# =============================================================================


class EmbeddingProvider:
    """Owned, process-wide sentence embedding model.

    Usage:
        provider = EmbeddingProvider(model_name=settings.embedding_model)
        await provider.initialize()
        vector = await provider.embed_text("late night synthwave")
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        dimension: int = EMBEDDING_DIMENSION,
        loader: Callable[[str], Any] | None = None,
    ) -> None:
        """Initialize the provider without loading the model.

        Args:
            model_name: sentence-transformers model identifier
            dimension: Expected embedding width
            loader: Callable returning a model for a name (defaults to
                    load_sentence_transformer)
        """
        self._model_name = model_name
        self._dimension = dimension
        self._loader = loader or load_sentence_transformer
        self._model: Any = None
        self._init_task: asyncio.Future[None] | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="embedding")

    @property
    def model_name(self) -> str:
        """Get the embedding model name."""
        return self._model_name

    @property
    def dimension(self) -> int:
        """Get the embedding width."""
        return self._dimension

    @property
    def is_ready(self) -> bool:
        """Whether the model is loaded."""
        return self._model is not None

    async def initialize(self) -> None:
        """Load the model once; concurrent callers share the same load.

        Raises:
            ModelLoadError: If the model cannot be fetched or loaded
        """
        if self._model is not None:
            return

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        task = self._init_task

        try:
            await asyncio.shield(task)
        except ModelLoadError:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _load(self) -> None:
        logger.info("Loading embedding model %s", self._model_name)
        loop = asyncio.get_running_loop()
        try:
            model = await loop.run_in_executor(self._executor, self._loader, self._model_name)
        except Exception as e:
            logger.error("Embedding model %s failed to load: %s", self._model_name, e)
            raise ModelLoadError(
                f"Failed to load embedding model '{self._model_name}': {e}",
                model_name=self._model_name,
                cause=e,
            ) from e

        dimension = _model_dimension(model)
        if dimension is not None and dimension != self._dimension:
            raise ModelLoadError(
                f"Model '{self._model_name}' produces {dimension}-dim vectors, "
                f"expected {self._dimension}",
                model_name=self._model_name,
            )

        self._model = model
        logger.info("Embedding model %s loaded", self._model_name)

    async def embed_text(self, text: str) -> list[float]:
        """Embed text into a unit-norm vector.

        Args:
            text: Input text; surrounding whitespace is ignored

        Returns:
            Vector of ``dimension`` floats with L2 norm 1

        Raises:
            EmptyInputError: If text is empty after trimming
            ModelLoadError: If the model cannot be loaded
            EmbeddingError: If inference fails
        """
        if not text or not text.strip():
            raise EmptyInputError()

        await self.initialize()

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self._encode, text.strip())
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding inference failed: {e}", cause=e) from e

    async def embed_track_metadata(self, record: TrackRecord) -> list[float]:
        """Embed a track's title, artist, genre and description.

        Raises:
            EmptyInputError: If every text field is blank
        """
        return await self.embed_text(compose_track_text(record))

    def _encode(self, text: str) -> list[float]:
        raw = self._model.encode(text, convert_to_numpy=True, normalize_embeddings=True)
        vector = np.asarray(raw, dtype=np.float64).reshape(-1)

        if vector.shape[0] != self._dimension:
            raise EmbeddingError(
                f"Model returned {vector.shape[0]}-dim vector, expected {self._dimension}"
            )

        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm) or norm == 0.0:
            raise EmbeddingError("Model returned a zero or non-finite vector")

        return (vector / norm).tolist()

    def close(self) -> None:
        """Release the inference thread. The loaded model is kept."""
        self._executor.shutdown(wait=False)
