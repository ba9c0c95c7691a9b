"""
Keyword matcher: case-insensitive substring search over track metadata.

Not a full-text engine. A track matches when its title, description, genre
or primary artist contains the query text; matches are ranked by popularity
(play count) descending, ties broken by id ascending.
"""

from __future__ import annotations

import logging

from track_search.search.models import TrackRecord
from track_search.search.vector import TrackStoreProtocol

logger = logging.getLogger(__name__)


class KeywordMatcher:
    """Popularity-ranked substring matcher backed by the track store.

    Usage:
        matcher = KeywordMatcher(store)
        records = await matcher.match_keyword("sunset", limit=15)
    """

    def __init__(self, store: TrackStoreProtocol) -> None:
        self._store = store

    async def match_keyword(self, text: str, limit: int) -> list[TrackRecord]:
        """Return up to ``limit`` public tracks containing ``text``.

        Returns an empty list for blank text, ``limit <= 0`` or no matches.

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        needle = text.strip() if text else ""
        if not needle or limit <= 0:
            return []

        candidates = await self._store.scan_keyword_candidates(needle, limit)
        # The store filters too; keep the matcher correct against any store.
        matches = [r for r in candidates if r.is_public and r.contains_text(needle)]
        matches.sort(key=lambda r: (-r.popularity, r.id))

        logger.debug(
            "Keyword match for %r: %d candidates, returning %d",
            needle,
            len(matches),
            min(len(matches), limit),
        )
        return matches[:limit]
