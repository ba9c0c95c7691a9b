"""
Custom exceptions for the track search subsystem.

Names avoid shadowing Python builtins (ConnectionError, TimeoutError):
StoreUnavailableError and SearchTimeoutError are used instead.
"""

from __future__ import annotations


class TrackSearchError(Exception):
    """Base exception for all track search errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize with message and optional cause.

        Args:
            message: Human-readable error description
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.cause = cause


# =============================================================================
# Embedding Provider
# =============================================================================


class EmbeddingError(TrackSearchError):
    """Raised when embedding generation fails."""

    pass


class ModelLoadError(EmbeddingError):
    """Raised when the embedding model cannot be fetched or loaded.

    Every caller awaiting the same initialization observes the same error.
    """

    def __init__(
        self,
        message: str,
        model_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.model_name = model_name


class EmptyInputError(EmbeddingError, ValueError):
    """Raised when text to embed is empty or whitespace-only."""

    def __init__(self, message: str = "Cannot embed empty or whitespace-only text") -> None:
        super().__init__(message)


# =============================================================================
# Metadata Vector Store
# =============================================================================


class StoreError(TrackSearchError):
    """Base exception for track store failures."""

    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached.

    Never converted into an empty result list: an empty list means
    "no qualifying record", this means "search could not run".
    """

    pass


class StoreQueryError(StoreError):
    """Raised when the store is reachable but an operation fails."""

    pass


class NotFoundError(StoreError):
    """Raised when an operation references an unknown record id."""

    def __init__(self, record_id: str, collection: str | None = None) -> None:
        where = f" in collection '{collection}'" if collection else ""
        super().__init__(f"Record '{record_id}' not found{where}")
        self.record_id = record_id
        self.collection = collection


# =============================================================================
# Hybrid Search Orchestrator
# =============================================================================


class SearchTimeoutError(TrackSearchError):
    """Raised when a search exceeds its time budget. Callers may retry."""

    def __init__(self, message: str, timeout_seconds: float | None = None) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
