"""
Pytest configuration and fixtures for track-search tests.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from tests.fakes import FakeEmbeddingProvider, hashed_embedding
from track_search.core.config import Settings
from track_search.embedding.provider import compose_track_text
from track_search.search.models import TrackOwner, TrackRecord, UserRecord
from track_search.search.vector import FakeTrackStore


@pytest.fixture
def settings() -> Settings:
    """Provide test settings independent of the environment's .env file."""
    return Settings(
        _env_file=None,
        qdrant_url="http://localhost:6333",
        log_file_path=None,
        search_timeout_seconds=2.0,
        embedding_timeout_seconds=1.5,
    )


@pytest.fixture
def fake_store() -> FakeTrackStore:
    """Empty in-memory track store."""
    return FakeTrackStore()


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    """Bag-of-words embedding provider."""
    return FakeEmbeddingProvider()


def make_track(
    track_id: str,
    title: str,
    *,
    description: str | None = None,
    genre: str | None = None,
    primary_artist: str | None = None,
    is_public: bool = True,
    popularity: int = 0,
    embedded: bool = True,
) -> TrackRecord:
    """Build a track whose embedding matches the fake provider's output."""
    record = TrackRecord(
        id=track_id,
        title=title,
        description=description,
        genre=genre,
        primary_artist=primary_artist,
        is_public=is_public,
        popularity=popularity,
        owner=TrackOwner(id=f"owner-{track_id}", display_name="Uploader"),
    )
    if embedded:
        record.embedding = hashed_embedding(compose_track_text(record))
    return record


@pytest.fixture
def track_factory():
    """Expose make_track to tests."""
    return make_track


@pytest_asyncio.fixture
async def sunset_store(fake_store: FakeTrackStore) -> FakeTrackStore:
    """Three embedded public tracks: two about sunsets, one about the ocean."""
    for record in (
        make_track("trk-a", "Sunset Drive", popularity=10),
        make_track("trk-b", "Ocean Breeze", popularity=500),
        make_track("trk-c", "Sunset Boulevard", popularity=50),
    ):
        await fake_store.upsert_record(record)
    return fake_store


@pytest_asyncio.fixture
async def user_store(fake_store: FakeTrackStore) -> FakeTrackStore:
    """A handful of users for user search."""
    for user in (
        UserRecord(id="u3", username="zara", display_name="Sunny Z"),
        UserRecord(id="u1", username="Alice", display_name="Alice Sun"),
        UserRecord(id="u2", username="bob", display_name="Bobby"),
        UserRecord(id="u4", username="sundial", display_name=None),
    ):
        await fake_store.upsert_user(user)
    return fake_store
