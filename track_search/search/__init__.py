"""
Search module for track-search.

Provides the track store (Qdrant), keyword matching, hybrid search
orchestration and the write-path indexer.

- vector.py: Qdrant track store and its in-memory fake
- keyword.py: popularity-ranked substring matching
- hybrid.py: vector search with keyword supplementation
- indexer.py: keeps projections and embeddings in sync with edits
"""

from __future__ import annotations

from track_search.search.hybrid import HybridSearchService
from track_search.search.indexer import TrackIndexer
from track_search.search.keyword import KeywordMatcher
from track_search.search.models import QuerySpec, SearchResult, TrackRecord, UserRecord
from track_search.search.vector import FakeTrackStore, QdrantTrackStore

__all__ = [
    "QdrantTrackStore",
    "FakeTrackStore",
    "KeywordMatcher",
    "HybridSearchService",
    "TrackIndexer",
    "QuerySpec",
    "SearchResult",
    "TrackRecord",
    "UserRecord",
]
