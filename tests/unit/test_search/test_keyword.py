"""
Unit tests for KeywordMatcher.

Matching is case-insensitive substring search over title, description,
genre and primary artist of public tracks, ranked by popularity.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from track_search.search.keyword import KeywordMatcher
from track_search.search.models import TrackRecord
from track_search.search.vector import FakeTrackStore


@pytest_asyncio.fixture
async def catalog() -> FakeTrackStore:
    store = FakeTrackStore()
    for record in (
        TrackRecord(id="t1", title="Sunset Drive", popularity=10),
        TrackRecord(id="t2", title="Night Ride", description="driving into the SUNSET", popularity=99),
        TrackRecord(id="t3", title="Ocean", genre="sunset-wave", popularity=10),
        TrackRecord(id="t4", title="Unrelated", primary_artist="Sunsetters", popularity=5),
        TrackRecord(id="t5", title="Sunset (private)", is_public=False, popularity=1000),
        TrackRecord(id="t6", title="Rain", popularity=500),
    ):
        await store.upsert_record(record)
    return store


class TestKeywordMatcher:
    """Tests for match_keyword ranking and edge cases."""

    @pytest.mark.asyncio
    async def test_matches_every_text_field_case_insensitively(
        self, catalog: FakeTrackStore
    ) -> None:
        matcher = KeywordMatcher(catalog)

        records = await matcher.match_keyword("sunset", limit=10)

        assert {r.id for r in records} == {"t1", "t2", "t3", "t4"}

    @pytest.mark.asyncio
    async def test_ranked_by_popularity_then_id(self, catalog: FakeTrackStore) -> None:
        matcher = KeywordMatcher(catalog)

        records = await matcher.match_keyword("SUNSET", limit=10)

        assert [r.id for r in records] == ["t2", "t1", "t3", "t4"]

    @pytest.mark.asyncio
    async def test_limit_applied_after_ranking(self, catalog: FakeTrackStore) -> None:
        matcher = KeywordMatcher(catalog)

        records = await matcher.match_keyword("sunset", limit=2)

        assert [r.id for r in records] == ["t2", "t1"]

    @pytest.mark.asyncio
    async def test_private_tracks_excluded(self, catalog: FakeTrackStore) -> None:
        matcher = KeywordMatcher(catalog)

        records = await matcher.match_keyword("private", limit=10)

        assert records == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,limit", [("", 5), ("   ", 5), ("sunset", 0), ("sunset", -1)])
    async def test_degenerate_input_returns_empty(self, text: str, limit: int) -> None:
        store = MagicMock()
        store.scan_keyword_candidates = AsyncMock()
        matcher = KeywordMatcher(store)

        assert await matcher.match_keyword(text, limit) == []
        store.scan_keyword_candidates.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_matches(self, catalog: FakeTrackStore) -> None:
        matcher = KeywordMatcher(catalog)

        assert await matcher.match_keyword("polka", limit=10) == []

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self) -> None:
        from track_search.search.exceptions import StoreUnavailableError

        store = FakeTrackStore()
        store.set_available(False)
        matcher = KeywordMatcher(store)

        with pytest.raises(StoreUnavailableError):
            await matcher.match_keyword("sunset", limit=5)
