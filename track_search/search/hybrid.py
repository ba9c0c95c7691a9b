"""
Hybrid track search: vector similarity first, keyword supplementation second.

Algorithm for one query:
1. Embed the query text and ask the store for the nearest public tracks
   (limit, similarity threshold).
2. If at least ``min_vector_results_for_sufficiency`` tracks came back, return
   them unchanged.
3. Otherwise fetch ``limit - len(vector_results)`` keyword matches.
4. Merge: vector results first in their order, then keyword results whose id
   was not already seen. Keyword-only results carry similarity 0.

Both sub-query shapes are converted to SearchResult right after they return;
the merge step only ever sees SearchResult objects.

Failure policy:
- Store errors propagate; they are never turned into an empty result list.
- ModelLoadError degrades to keyword-only search when configured to.
- The whole request runs under a time budget; exceeding it raises
  SearchTimeoutError and cancels the pending store call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from track_search.search.exceptions import EmptyInputError, ModelLoadError, SearchTimeoutError
from track_search.search.keyword import KeywordMatcher
from track_search.search.models import (
    DEFAULT_USER_LIMIT,
    MAX_USER_LIMIT,
    MAX_USER_QUERY_LENGTH,
    QuerySpec,
    SearchResult,
    UserSearchResult,
)
from track_search.search.vector import TrackStoreProtocol

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

_DEFAULT_SUFFICIENCY = 5
_DEFAULT_SEARCH_TIMEOUT = 2.0
_DEFAULT_EMBEDDING_TIMEOUT = 1.5


def merge_results(
    vector_results: list[SearchResult],
    keyword_results: list[SearchResult],
    limit: int,
) -> list[SearchResult]:
    """Concatenate vector then keyword results, first occurrence of an id wins."""
    merged: list[SearchResult] = []
    seen: set[str] = set()
    for result in (*vector_results, *keyword_results):
        if result.id in seen:
            continue
        seen.add(result.id)
        merged.append(result)
    return merged[:limit]


# =============================================================================
# HybridSearchService
# =============================================================================


class HybridSearchService:
    """Orchestrates embedding, vector search and keyword supplementation.

    Usage:
        service = HybridSearchService(
            store=store,
            provider=provider,
            settings=settings,
        )
        results = await service.hybrid_search(QuerySpec(text="sunset"))
    """

    def __init__(
        self,
        store: TrackStoreProtocol,
        provider: Any,  # EmbeddingProviderProtocol
        settings: Any,
        keyword_matcher: KeywordMatcher | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Track store (Qdrant or fake)
            provider: Embedding provider, already constructed
            settings: Settings with search thresholds and timeouts
            keyword_matcher: Optional matcher (defaults to one over ``store``)
        """
        self._store = store
        self._provider = provider
        self._keyword_matcher = keyword_matcher or KeywordMatcher(store)

        self._sufficiency = getattr(
            settings, "min_vector_results_for_sufficiency", _DEFAULT_SUFFICIENCY
        )
        self._search_timeout = getattr(settings, "search_timeout_seconds", _DEFAULT_SEARCH_TIMEOUT)
        self._embedding_timeout = getattr(
            settings, "embedding_timeout_seconds", _DEFAULT_EMBEDDING_TIMEOUT
        )
        self._degrade_on_embedding_failure = getattr(
            settings, "degrade_on_embedding_failure", True
        )

    @property
    def sufficiency_threshold(self) -> int:
        """Vector result count at which keyword supplementation is skipped."""
        return self._sufficiency

    # -------------------------------------------------------------------------
    # Track search
    # -------------------------------------------------------------------------

    async def hybrid_search(self, query: QuerySpec) -> list[SearchResult]:
        """Run a hybrid search.

        Args:
            query: Validated query (text, limit, similarity threshold)

        Returns:
            At most ``query.limit`` results, vector results first

        Raises:
            EmptyInputError: If the query text is blank
            StoreUnavailableError: If the store cannot be reached
            SearchTimeoutError: If the request exceeds its time budget
        """
        try:
            return await asyncio.wait_for(self._hybrid_search(query), timeout=self._search_timeout)
        except asyncio.TimeoutError as e:
            raise SearchTimeoutError(
                f"Search exceeded {self._search_timeout}s budget",
                timeout_seconds=self._search_timeout,
            ) from e

    async def _hybrid_search(self, query: QuerySpec) -> list[SearchResult]:
        text = query.text.strip()

        vector_results = await self._vector_phase(text, query)
        if len(vector_results) >= self._sufficiency:
            logger.info(
                "Vector results sufficient",
                extra={"vector_count": len(vector_results), "keyword_count": 0},
            )
            return vector_results[: query.limit]

        remaining = query.limit - len(vector_results)
        keyword_records = await self._keyword_matcher.match_keyword(text, remaining)
        keyword_results = [SearchResult.from_record(r) for r in keyword_records]

        merged = merge_results(vector_results, keyword_results, query.limit)
        logger.info(
            "Vector results supplemented with keyword matches",
            extra={
                "vector_count": len(vector_results),
                "keyword_count": len(keyword_results),
                "result_count": len(merged),
            },
        )
        return merged

    async def _vector_phase(self, text: str, query: QuerySpec) -> list[SearchResult]:
        try:
            vector = await asyncio.wait_for(
                self._provider.embed_text(text),
                timeout=self._embedding_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SearchTimeoutError(
                f"Query embedding exceeded {self._embedding_timeout}s budget",
                timeout_seconds=self._embedding_timeout,
            ) from e
        except ModelLoadError as e:
            if not self._degrade_on_embedding_failure:
                raise
            logger.warning("Embedding model unavailable, using keyword search only: %s", e)
            return []

        matches = await self._store.query_nearest(
            vector,
            limit=query.limit,
            min_similarity=query.similarity_threshold,
        )
        return [SearchResult.from_vector_match(m) for m in matches]

    # -------------------------------------------------------------------------
    # User search
    # -------------------------------------------------------------------------

    async def search_users(self, text: str, limit: int = DEFAULT_USER_LIMIT) -> list[UserSearchResult]:
        """Find users whose username or display name contains ``text``.

        Results are ordered by username (case-insensitive), then id.

        Raises:
            EmptyInputError: If text is blank
            ValueError: If text exceeds 100 characters or limit is outside 1..20
        """
        if not text or not text.strip():
            raise EmptyInputError("Search text must not be blank")
        if len(text) > MAX_USER_QUERY_LENGTH:
            raise ValueError(
                f"Search text must be at most {MAX_USER_QUERY_LENGTH} characters, got {len(text)}"
            )
        if not 1 <= limit <= MAX_USER_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_USER_LIMIT}, got {limit}")

        try:
            users = await asyncio.wait_for(
                self._store.scan_users(text.strip()),
                timeout=self._search_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SearchTimeoutError(
                f"User search exceeded {self._search_timeout}s budget",
                timeout_seconds=self._search_timeout,
            ) from e

        users.sort(key=lambda u: (u.username.lower(), u.id))
        return [UserSearchResult.from_record(u) for u in users[:limit]]
