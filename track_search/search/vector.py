"""
Qdrant-backed metadata vector store for track search.

Design:
- Repository Pattern: abstraction over the track/user projections
- FakeTrackStore for testing: same interface, in-memory, brute-force cosine
- Connection reuse: one AsyncQdrantClient per store instance
- HNSW indexing: approximate NN over a named "metadata" vector, cosine distance
- Visibility: every vector and keyword query is filtered on is_public, which
  has its own payload index
- Keyword scans walk public tracks in popularity order (integer payload
  index) and match substrings client-side; Qdrant text matching is
  word-based, so it cannot express "sun" matching "Sunset"

Point layout (collection ``tracks``):
- id: UUIDv5 derived from the opaque track id (Qdrant ids must be UUIDs/ints)
- vector: {"metadata": [384 floats]} or {} while no embedding exists
- payload: the TrackRecord fields, with the track id under ``track_id``

Users live in a vector-less ``users`` collection with the same id scheme.

Similarity is ``1 - cosine distance``, i.e. the raw Qdrant cosine score.
"""

from __future__ import annotations

import asyncio
import math
import uuid
from typing import Any, Protocol, runtime_checkable

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Direction,
    Distance,
    FieldCondition,
    Filter,
    HasIdCondition,
    HasVectorCondition,
    HnswConfigDiff,
    MatchValue,
    OrderBy,
    PayloadSchemaType,
    PointStruct,
    PointVectors,
    SearchParams,
    VectorParams,
)

from track_search.search.exceptions import (
    NotFoundError,
    StoreError,
    StoreQueryError,
    StoreUnavailableError,
)
from track_search.search.models import (
    EMBEDDING_DIMENSION,
    TrackOwner,
    TrackRecord,
    UserRecord,
    VectorMatch,
)

# =============================================================================
# Constants
# =============================================================================

VECTOR_NAME = "metadata"

_DEFAULT_HNSW_M = 16
_DEFAULT_HNSW_EF_CONSTRUCT = 100
_DEFAULT_HNSW_EF_SEARCH = 128
_SCROLL_PAGE_SIZE = 256
_NORM_TOLERANCE = 1e-3
_UNAVAILABLE_STATUS_CODES = {502, 503, 504}

# Fixed namespace so the same track id always maps to the same point id.
_POINT_NAMESPACE = uuid.UUID("6f1c1f0e-5a38-4d51-9a57-1f0b8e2f4c21")

_PUBLIC_ONLY = FieldCondition(key="is_public", match=MatchValue(value=True))


def point_id(record_id: str) -> str:
    """Map an opaque record id onto a stable Qdrant point id."""
    return str(uuid.uuid5(_POINT_NAMESPACE, record_id))


def _validate_vector(vector: list[float], dimension: int) -> None:
    """Reject vectors that break the width / unit-norm invariant.

    Raises:
        ValueError: If the vector has the wrong width or is not unit length
    """
    if len(vector) != dimension:
        raise ValueError(f"Embedding must have {dimension} dimensions, got {len(vector)}")
    norm = math.sqrt(sum(x * x for x in vector))
    if not math.isfinite(norm) or abs(norm - 1.0) > _NORM_TOLERANCE:
        raise ValueError(f"Embedding must be unit length, got norm {norm:.6f}")


def _sort_matches(matches: list[VectorMatch]) -> list[VectorMatch]:
    """Similarity descending, then lower id first."""
    return sorted(matches, key=lambda m: (-m.similarity, m.id))


def _rank_by_popularity(records: list[TrackRecord]) -> list[TrackRecord]:
    """Popularity descending, then lower id first."""
    return sorted(records, key=lambda r: (-r.popularity, r.id))


# =============================================================================
# Payload Conversion
# =============================================================================


def track_to_payload(record: TrackRecord) -> dict[str, Any]:
    """Serialize a track projection into a Qdrant payload."""
    return {
        "track_id": record.id,
        "title": record.title,
        "description": record.description,
        "genre": record.genre,
        "primary_artist": record.primary_artist,
        "is_public": record.is_public,
        "popularity": record.popularity,
        "cover_art_url": record.cover_art_url,
        "owner_id": record.owner.id if record.owner else None,
        "owner_display_name": record.owner.display_name if record.owner else None,
        "like_count": record.like_count,
    }


def payload_to_track(payload: dict[str, Any], embedding: list[float] | None = None) -> TrackRecord:
    """Rebuild a track projection from a Qdrant payload."""
    owner = None
    if payload.get("owner_id"):
        owner = TrackOwner(
            id=payload["owner_id"],
            display_name=payload.get("owner_display_name") or "",
        )
    return TrackRecord(
        id=payload["track_id"],
        title=payload.get("title") or "",
        description=payload.get("description"),
        genre=payload.get("genre"),
        primary_artist=payload.get("primary_artist"),
        is_public=bool(payload.get("is_public", False)),
        popularity=int(payload.get("popularity") or 0),
        cover_art_url=payload.get("cover_art_url"),
        owner=owner,
        like_count=int(payload.get("like_count") or 0),
        embedding=embedding,
    )


def user_to_payload(user: UserRecord) -> dict[str, Any]:
    """Serialize a user projection into a Qdrant payload."""
    return {
        "user_id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
    }


def payload_to_user(payload: dict[str, Any]) -> UserRecord:
    """Rebuild a user projection from a Qdrant payload."""
    return UserRecord(
        id=payload["user_id"],
        username=payload.get("username") or "",
        display_name=payload.get("display_name"),
        avatar_url=payload.get("avatar_url"),
    )


# =============================================================================
# Protocol for Duck Typing
# =============================================================================


@runtime_checkable
class TrackStoreProtocol(Protocol):
    """Interface shared by QdrantTrackStore and FakeTrackStore."""

    async def upsert_record(self, record: TrackRecord) -> None:
        """Write a whole track projection, including its embedding if present."""
        ...

    async def update_payload(self, record: TrackRecord) -> None:
        """Replace a track's fields without touching its embedding."""
        ...

    async def upsert_embedding(self, record_id: str, vector: list[float]) -> None:
        """Replace a track's embedding."""
        ...

    async def clear_embedding(self, record_id: str) -> None:
        """Remove a track's embedding."""
        ...

    async def delete_record(self, record_id: str) -> None:
        """Remove a track entirely."""
        ...

    async def query_nearest(
        self,
        query_vector: list[float],
        limit: int,
        min_similarity: float,
    ) -> list[VectorMatch]:
        """Public tracks ranked by cosine similarity."""
        ...

    async def fetch_missing_embeddings(
        self,
        limit: int,
        exclude_ids: set[str] | None = None,
    ) -> list[TrackRecord]:
        """Public tracks without an embedding."""
        ...

    async def scan_keyword_candidates(self, needle: str, limit: int) -> list[TrackRecord]:
        """The ``limit`` most popular public tracks containing ``needle``."""
        ...

    async def upsert_user(self, user: UserRecord) -> None:
        """Write a user projection."""
        ...

    async def scan_users(self, needle: str) -> list[UserRecord]:
        """Users whose username or display name contains ``needle``."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...


# =============================================================================
# Real Implementation
# =============================================================================


class QdrantTrackStore:
    """Qdrant client implementing the track store.

    Usage:
        async with QdrantTrackStore(settings=settings) as store:
            await store.ensure_collections()
            matches = await store.query_nearest(vector, limit=20, min_similarity=0.3)
    """

    def __init__(self, settings: Any) -> None:
        """Initialize store with a Settings object.

        Args:
            settings: Settings with qdrant_url and optional qdrant_api_key,
                      collection names, embedding_dimension and HNSW parameters

        Note:
            Client is NOT created here. Call connect() or use as async
            context manager.
        """
        self._settings = settings
        self._url = settings.qdrant_url
        self._api_key = getattr(settings, "qdrant_api_key", None)
        self._tracks = getattr(settings, "tracks_collection", "tracks")
        self._users = getattr(settings, "users_collection", "users")
        self._dimension = getattr(settings, "embedding_dimension", EMBEDDING_DIMENSION)
        self._hnsw_m = getattr(settings, "hnsw_m", _DEFAULT_HNSW_M)
        self._hnsw_ef_construct = getattr(settings, "hnsw_ef_construct", _DEFAULT_HNSW_EF_CONSTRUCT)
        self._hnsw_ef_search = getattr(settings, "hnsw_ef_search", _DEFAULT_HNSW_EF_SEARCH)
        self._client: AsyncQdrantClient | None = None

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the client and verify connectivity.

        Raises:
            StoreUnavailableError: If Qdrant cannot be reached
        """
        try:
            self._client = AsyncQdrantClient(location=self._url, api_key=self._api_key)
            await self._client.get_collections()
        except Exception as e:
            self._client = None
            raise StoreUnavailableError(
                f"Failed to connect to Qdrant at {self._url}: {e}",
                cause=e,
            ) from e

    async def close(self) -> None:
        """Close the client. Idempotent."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> QdrantTrackStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        """Whether connect() has succeeded."""
        return self._client is not None

    def _require_client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise StoreUnavailableError("Track store is not connected. Call connect() first.")
        return self._client

    def _wrap_error(self, action: str, exc: Exception) -> StoreError:
        """Classify a client failure as connectivity or query error."""
        if isinstance(exc, UnexpectedResponse):
            unavailable = exc.status_code in _UNAVAILABLE_STATUS_CODES
        else:
            unavailable = isinstance(
                exc,
                (ResponseHandlingException, ConnectionError, OSError, TimeoutError, asyncio.TimeoutError),
            )
        if unavailable:
            return StoreUnavailableError(
                f"Qdrant at {self._url} unavailable during {action}: {exc}",
                cause=exc,
            )
        return StoreQueryError(f"{action} failed: {exc}", cause=exc)

    async def health_check(self) -> bool:
        """Return True if Qdrant answers a lightweight request."""
        if self._client is None:
            return False
        try:
            await self._client.get_collections()
        except Exception:
            return False
        return True

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    async def ensure_collections(self) -> None:
        """Create the track and user collections and payload indexes if absent.

        Raises:
            StoreUnavailableError: If Qdrant cannot be reached
            StoreQueryError: If creation fails
        """
        client = self._require_client()
        try:
            if not await client.collection_exists(collection_name=self._tracks):
                await client.create_collection(
                    collection_name=self._tracks,
                    vectors_config={
                        VECTOR_NAME: VectorParams(size=self._dimension, distance=Distance.COSINE),
                    },
                    hnsw_config=HnswConfigDiff(m=self._hnsw_m, ef_construct=self._hnsw_ef_construct),
                )
                await client.create_payload_index(
                    collection_name=self._tracks,
                    field_name="is_public",
                    field_schema=PayloadSchemaType.BOOL,
                )
                await client.create_payload_index(
                    collection_name=self._tracks,
                    field_name="popularity",
                    field_schema=PayloadSchemaType.INTEGER,
                )

            if not await client.collection_exists(collection_name=self._users):
                await client.create_collection(collection_name=self._users, vectors_config={})
        except Exception as e:
            raise self._wrap_error(f"ensure collections '{self._tracks}', '{self._users}'", e) from e

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _require_point(self, collection: str, record_id: str) -> None:
        client = self._require_client()
        try:
            found = await client.retrieve(
                collection_name=collection,
                ids=[point_id(record_id)],
                with_payload=False,
                with_vectors=False,
            )
        except Exception as e:
            raise self._wrap_error(f"lookup of '{record_id}'", e) from e
        if not found:
            raise NotFoundError(record_id, collection=collection)

    async def upsert_record(self, record: TrackRecord) -> None:
        """Write a whole track projection in one point upsert.

        A record without an embedding is stored vector-less and stays out
        of vector search until backfilled.

        Raises:
            ValueError: If the embedding breaks the width / unit-norm invariant
        """
        client = self._require_client()
        vector: dict[str, list[float]] = {}
        if record.embedding is not None:
            _validate_vector(record.embedding, self._dimension)
            vector[VECTOR_NAME] = record.embedding

        point = PointStruct(id=point_id(record.id), vector=vector, payload=track_to_payload(record))
        try:
            await client.upsert(collection_name=self._tracks, points=[point])
        except Exception as e:
            raise self._wrap_error(f"upsert of track '{record.id}'", e) from e

    async def update_payload(self, record: TrackRecord) -> None:
        """Replace a track's fields, keeping its stored embedding.

        Raises:
            NotFoundError: If the track is unknown
        """
        await self._require_point(self._tracks, record.id)
        client = self._require_client()
        try:
            await client.overwrite_payload(
                collection_name=self._tracks,
                payload=track_to_payload(record),
                points=[point_id(record.id)],
            )
        except Exception as e:
            raise self._wrap_error(f"payload update of track '{record.id}'", e) from e

    async def upsert_embedding(self, record_id: str, vector: list[float]) -> None:
        """Replace the embedding of an existing track.

        Raises:
            ValueError: If the vector breaks the width / unit-norm invariant
            NotFoundError: If the track is unknown
        """
        _validate_vector(vector, self._dimension)
        await self._require_point(self._tracks, record_id)
        client = self._require_client()
        try:
            await client.update_vectors(
                collection_name=self._tracks,
                points=[PointVectors(id=point_id(record_id), vector={VECTOR_NAME: vector})],
            )
        except Exception as e:
            raise self._wrap_error(f"embedding update of track '{record_id}'", e) from e

    async def clear_embedding(self, record_id: str) -> None:
        """Remove a track's embedding; the track leaves vector search.

        Raises:
            NotFoundError: If the track is unknown
        """
        await self._require_point(self._tracks, record_id)
        client = self._require_client()
        try:
            await client.delete_vectors(
                collection_name=self._tracks,
                vectors=[VECTOR_NAME],
                points=[point_id(record_id)],
            )
        except Exception as e:
            raise self._wrap_error(f"embedding clear of track '{record_id}'", e) from e

    async def delete_record(self, record_id: str) -> None:
        """Remove a track. Deleting an unknown id is a no-op."""
        client = self._require_client()
        try:
            await client.delete(collection_name=self._tracks, points_selector=[point_id(record_id)])
        except Exception as e:
            raise self._wrap_error(f"delete of track '{record_id}'", e) from e

    async def upsert_user(self, user: UserRecord) -> None:
        """Write a user projection."""
        client = self._require_client()
        point = PointStruct(id=point_id(user.id), vector={}, payload=user_to_payload(user))
        try:
            await client.upsert(collection_name=self._users, points=[point])
        except Exception as e:
            raise self._wrap_error(f"upsert of user '{user.id}'", e) from e

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def query_nearest(
        self,
        query_vector: list[float],
        limit: int,
        min_similarity: float,
    ) -> list[VectorMatch]:
        """Rank public, embedded tracks by cosine similarity to the query.

        Args:
            query_vector: Unit-norm query embedding
            limit: Maximum number of matches
            min_similarity: Matches below this similarity are excluded

        Returns:
            Matches sorted by similarity descending, then id ascending.
            Fewer than ``limit`` when fewer qualify; never padded.

        Raises:
            StoreUnavailableError: If Qdrant cannot be reached
            StoreQueryError: If the query fails
        """
        if limit <= 0:
            return []
        if len(query_vector) != self._dimension:
            raise ValueError(
                f"Query vector must have {self._dimension} dimensions, got {len(query_vector)}"
            )

        client = self._require_client()
        try:
            response = await client.query_points(
                collection_name=self._tracks,
                query=query_vector,
                using=VECTOR_NAME,
                query_filter=Filter(must=[_PUBLIC_ONLY]),
                limit=limit,
                score_threshold=min_similarity,
                search_params=SearchParams(hnsw_ef=max(self._hnsw_ef_search, limit)),
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise self._wrap_error(f"vector query on '{self._tracks}'", e) from e

        matches = []
        for point in response.points:
            payload = point.payload or {}
            # Re-check visibility and threshold on the client side as well.
            if not payload.get("is_public") or point.score < min_similarity:
                continue
            record = payload_to_track(payload)
            matches.append(VectorMatch(id=record.id, similarity=min(point.score, 1.0), record=record))

        return _sort_matches(matches)[:limit]

    async def _scroll_all(self, collection: str, scroll_filter: Filter | None, action: str) -> list[Any]:
        client = self._require_client()
        points: list[Any] = []
        offset = None
        try:
            while True:
                page, offset = await client.scroll(
                    collection_name=collection,
                    scroll_filter=scroll_filter,
                    limit=_SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                points.extend(page)
                if offset is None:
                    return points
        except Exception as e:
            raise self._wrap_error(action, e) from e

    async def fetch_missing_embeddings(
        self,
        limit: int,
        exclude_ids: set[str] | None = None,
    ) -> list[TrackRecord]:
        """Return up to ``limit`` public tracks that have no embedding.

        Args:
            limit: Batch size
            exclude_ids: Track ids to skip (e.g. ones that already failed)
        """
        if limit <= 0:
            return []
        client = self._require_client()

        must_not: list[Any] = [HasVectorCondition(has_vector=VECTOR_NAME)]
        if exclude_ids:
            must_not.append(HasIdCondition(has_id=[point_id(i) for i in sorted(exclude_ids)]))

        try:
            page, _ = await client.scroll(
                collection_name=self._tracks,
                scroll_filter=Filter(must=[_PUBLIC_ONLY], must_not=must_not),
                limit=limit,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise self._wrap_error(f"missing-embedding scan on '{self._tracks}'", e) from e

        return [payload_to_track(point.payload or {}) for point in page]

    async def scan_keyword_candidates(self, needle: str, limit: int) -> list[TrackRecord]:
        """Return the ``limit`` most popular public tracks containing ``needle``.

        Public tracks are scrolled in descending popularity (served by the
        popularity payload index) and matched case-insensitively in Python.
        The walk stops once ``limit`` matches are held and it has passed
        their lowest popularity, so equal-popularity ties still resolve by id.

        Returns:
            Matches ordered by popularity descending, then id ascending
        """
        text = needle.strip()
        if not text or limit <= 0:
            return []
        client = self._require_client()

        matches: list[TrackRecord] = []
        start_from: int | None = None
        # Points already returned at the current start_from value; a value
        # scroll restarts at that value inclusively.
        seen_at_boundary: list[Any] = []

        try:
            while True:
                page, _ = await client.scroll(
                    collection_name=self._tracks,
                    scroll_filter=Filter(
                        must=[_PUBLIC_ONLY],
                        must_not=[HasIdCondition(has_id=seen_at_boundary)] if seen_at_boundary else None,
                    ),
                    limit=_SCROLL_PAGE_SIZE,
                    order_by=OrderBy(key="popularity", direction=Direction.DESC, start_from=start_from),
                    with_payload=True,
                    with_vectors=False,
                )

                for point in page:
                    record = payload_to_track(point.payload or {})
                    if len(matches) >= limit and record.popularity < matches[limit - 1].popularity:
                        return _rank_by_popularity(matches)[:limit]
                    if record.contains_text(text):
                        matches.append(record)

                if len(page) < _SCROLL_PAGE_SIZE:
                    return _rank_by_popularity(matches)[:limit]

                last = int((page[-1].payload or {}).get("popularity") or 0)
                boundary = [
                    point.id for point in page if int((point.payload or {}).get("popularity") or 0) == last
                ]
                seen_at_boundary = seen_at_boundary + boundary if last == start_from else boundary
                start_from = last
        except Exception as e:
            raise self._wrap_error(f"keyword scan on '{self._tracks}'", e) from e

    async def scan_users(self, needle: str) -> list[UserRecord]:
        """Return every user whose username or display name contains ``needle``.

        Usernames have no range index to order by, so the payload-only users
        collection is scrolled in pages and matched in Python.
        """
        text = needle.strip()
        if not text:
            return []
        points = await self._scroll_all(self._users, None, f"user scan on '{self._users}'")
        users = (payload_to_user(point.payload or {}) for point in points)
        return [user for user in users if user.contains_text(text)]


# =============================================================================
# Fake Implementation for Testing
# =============================================================================


class FakeTrackStore:
    """In-memory fake track store for unit testing and local development.

    Implements the same interface as QdrantTrackStore (duck typing) with an
    exact brute-force cosine ranking.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION) -> None:
        """Initialize with empty in-memory storage."""
        self._dimension = dimension
        self._tracks: dict[str, TrackRecord] = {}
        self._users: dict[str, UserRecord] = {}
        self._available = True
        self.failing_writes: set[str] = set()
        self.calls: list[str] = []

    def set_available(self, available: bool) -> None:
        """Simulate an outage for testing."""
        self._available = available

    def get(self, record_id: str) -> TrackRecord | None:
        """Inspect a stored track (test helper)."""
        return self._tracks.get(record_id)

    async def _enter(self, operation: str) -> None:
        await asyncio.sleep(0)  # Yield to event loop
        self.calls.append(operation)
        if not self._available:
            raise StoreUnavailableError(f"Fake store unavailable during {operation}")

    def _require(self, record_id: str) -> TrackRecord:
        record = self._tracks.get(record_id)
        if record is None:
            raise NotFoundError(record_id, collection="tracks")
        return record

    async def health_check(self) -> bool:
        await asyncio.sleep(0)  # Yield to event loop
        return self._available

    async def ensure_collections(self) -> None:
        await self._enter("ensure_collections")

    async def upsert_record(self, record: TrackRecord) -> None:
        await self._enter("upsert_record")
        if record.embedding is not None:
            _validate_vector(record.embedding, self._dimension)
        self._tracks[record.id] = TrackRecord(**vars(record))

    async def update_payload(self, record: TrackRecord) -> None:
        await self._enter("update_payload")
        existing = self._require(record.id)
        updated = TrackRecord(**vars(record))
        updated.embedding = existing.embedding
        self._tracks[record.id] = updated

    async def upsert_embedding(self, record_id: str, vector: list[float]) -> None:
        await self._enter("upsert_embedding")
        _validate_vector(vector, self._dimension)
        record = self._require(record_id)
        if record_id in self.failing_writes:
            raise StoreQueryError(f"Simulated write failure for '{record_id}'")
        record.embedding = list(vector)

    async def clear_embedding(self, record_id: str) -> None:
        await self._enter("clear_embedding")
        self._require(record_id).embedding = None

    async def delete_record(self, record_id: str) -> None:
        await self._enter("delete_record")
        self._tracks.pop(record_id, None)

    async def upsert_user(self, user: UserRecord) -> None:
        await self._enter("upsert_user")
        self._users[user.id] = UserRecord(**vars(user))

    async def query_nearest(
        self,
        query_vector: list[float],
        limit: int,
        min_similarity: float,
    ) -> list[VectorMatch]:
        await self._enter("query_nearest")
        if limit <= 0:
            return []

        matches = []
        for record in self._tracks.values():
            if not record.is_public or record.embedding is None:
                continue
            similarity = self._cosine_similarity(query_vector, record.embedding)
            if similarity < min_similarity:
                continue
            matches.append(VectorMatch(id=record.id, similarity=min(similarity, 1.0), record=record))

        return _sort_matches(matches)[:limit]

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """1 - cosine distance."""
        dot_product = sum(x * y for x, y in zip(a, b, strict=False))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(x * x for x in b))

        if norm_a == 0 or norm_b == 0:
            return 0.0

        return dot_product / (norm_a * norm_b)

    async def fetch_missing_embeddings(
        self,
        limit: int,
        exclude_ids: set[str] | None = None,
    ) -> list[TrackRecord]:
        await self._enter("fetch_missing_embeddings")
        excluded = exclude_ids or set()
        missing = [
            record
            for record in self._tracks.values()
            if record.is_public and record.embedding is None and record.id not in excluded
        ]
        return missing[: max(limit, 0)]

    async def scan_keyword_candidates(self, needle: str, limit: int) -> list[TrackRecord]:
        await self._enter("scan_keyword_candidates")
        if not needle.strip() or limit <= 0:
            return []
        matches = [
            record
            for record in self._tracks.values()
            if record.is_public and record.contains_text(needle.strip())
        ]
        return _rank_by_popularity(matches)[:limit]

    async def scan_users(self, needle: str) -> list[UserRecord]:
        await self._enter("scan_users")
        if not needle.strip():
            return []
        return [user for user in self._users.values() if user.contains_text(needle.strip())]
