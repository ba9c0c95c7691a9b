"""
Embedding module for track-search.

One sentence-transformers model per process, loaded once and shared.
"""

from __future__ import annotations

from track_search.embedding.provider import (
    EmbeddingProvider,
    EmbeddingProviderProtocol,
    compose_track_text,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingProviderProtocol",
    "compose_track_text",
]
