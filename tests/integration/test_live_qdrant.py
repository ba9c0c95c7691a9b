"""
Live tests against a running Qdrant and the real sentence-transformers model.

Skipped unless TRACK_SEARCH_LIVE_QDRANT_URL is set, e.g.:

    docker run -p 6333:6333 qdrant/qdrant
    TRACK_SEARCH_LIVE_QDRANT_URL=http://localhost:6333 pytest -m live
"""

from __future__ import annotations

import os
import uuid

import numpy as np
import pytest
import pytest_asyncio

from track_search.core.config import Settings
from track_search.search.models import TrackRecord

LIVE_URL = os.environ.get("TRACK_SEARCH_LIVE_QDRANT_URL")

pytestmark = [
    pytest.mark.live,
    pytest.mark.skipif(not LIVE_URL, reason="TRACK_SEARCH_LIVE_QDRANT_URL not set"),
]

CORPUS_SIZE = 2000
QUERY_COUNT = 25
TOP_K = 10


@pytest.fixture
def live_settings() -> Settings:
    suffix = uuid.uuid4().hex[:8]
    return Settings(
        _env_file=None,
        qdrant_url=LIVE_URL or "http://localhost:6333",
        tracks_collection=f"test_tracks_{suffix}",
        users_collection=f"test_users_{suffix}",
        log_file_path=None,
        search_timeout_seconds=30.0,
        embedding_timeout_seconds=30.0,
    )


@pytest_asyncio.fixture
async def live_store(live_settings: Settings):
    from track_search.search.vector import QdrantTrackStore

    store = QdrantTrackStore(settings=live_settings)
    await store.connect()
    await store.ensure_collections()
    try:
        yield store
    finally:
        await store._client.delete_collection(live_settings.tracks_collection)
        await store._client.delete_collection(live_settings.users_collection)
        await store.close()


def random_unit_vectors(count: int, seed: int) -> np.ndarray:
    vectors = np.random.default_rng(seed).standard_normal((count, 384))
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


class TestLiveQdrant:
    """Recall and ranking against real infrastructure."""

    @pytest.mark.asyncio
    async def test_recall_floor_against_brute_force(self, live_store) -> None:
        corpus = random_unit_vectors(CORPUS_SIZE, seed=7)
        ids = [f"rec-{i:05d}" for i in range(CORPUS_SIZE)]
        for track_id, vector in zip(ids, corpus, strict=True):
            await live_store.upsert_record(
                TrackRecord(id=track_id, title=track_id, embedding=vector.tolist())
            )

        # Queries near corpus points, so the top-K neighbourhoods are meaningful.
        anchors = corpus[:QUERY_COUNT] + 0.3 * random_unit_vectors(QUERY_COUNT, seed=11)
        queries = anchors / np.linalg.norm(anchors, axis=1, keepdims=True)

        overlaps = []
        for query in queries:
            exact = np.argsort(-(corpus @ query))[:TOP_K]
            expected = {ids[i] for i in exact}
            matches = await live_store.query_nearest(query.tolist(), limit=TOP_K, min_similarity=-1.0)
            overlaps.append(len(expected & {m.id for m in matches}) / TOP_K)

        assert np.mean(overlaps) >= 0.95

    @pytest.mark.asyncio
    async def test_sunset_query_with_real_model(self, live_store, live_settings: Settings) -> None:
        from track_search.embedding.provider import EmbeddingProvider
        from track_search.search.hybrid import HybridSearchService
        from track_search.search.indexer import TrackIndexer
        from track_search.search.models import QuerySpec

        provider = EmbeddingProvider(model_name=live_settings.embedding_model)
        try:
            indexer = TrackIndexer(live_store, provider)
            for track_id, title in (("a", "Sunset Drive"), ("b", "Ocean Breeze"), ("c", "Sunset Boulevard")):
                await indexer.index_track(TrackRecord(id=track_id, title=title))

            service = HybridSearchService(store=live_store, provider=provider, settings=live_settings)
            results = await service.hybrid_search(QuerySpec(text="sunset", similarity_threshold=0.0))
        finally:
            provider.close()

        ids = [r.id for r in results]
        assert set(ids[:2]) == {"a", "c"}
        assert ids.index("b") == 2
        assert results[0].similarity >= results[1].similarity >= results[2].similarity
