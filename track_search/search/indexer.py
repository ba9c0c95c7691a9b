"""
Write-path sync between the track CRUD layer and the search projection.

The CRUD layer calls the indexer after it has committed a change:
- create: embed the metadata, store the whole projection
- update: re-embed only when an embedded text field changed; an edit that
  leaves no text to embed clears the stored embedding
- delete: drop the projection

When ``block_on_embedding`` is False an embedding failure does not fail the
write: the record is stored without an embedding and the next backfill run
picks it up.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from track_search.search.exceptions import EmbeddingError, EmptyInputError
from track_search.search.models import TrackRecord
from track_search.search.vector import TrackStoreProtocol

logger = logging.getLogger(__name__)


class TrackIndexer:
    """Keeps stored track projections and embeddings in sync with edits."""

    def __init__(self, store: TrackStoreProtocol, provider: Any) -> None:
        self._store = store
        self._provider = provider

    async def _embed(self, record: TrackRecord, block_on_embedding: bool) -> list[float] | None:
        try:
            return await self._provider.embed_track_metadata(record)
        except EmptyInputError:
            raise
        except EmbeddingError as e:
            if block_on_embedding:
                raise
            logger.warning(
                "Storing track without embedding, backfill will retry: %s",
                e,
                extra={"record_id": record.id},
            )
            return None

    async def index_track(self, record: TrackRecord, block_on_embedding: bool = True) -> TrackRecord:
        """Embed and store a new track.

        Returns:
            The stored projection (with its embedding, if one was computed)

        Raises:
            EmbeddingError: If embedding fails and ``block_on_embedding`` is True
            StoreError: If the store write fails
        """
        embedding = await self._embed(record, block_on_embedding)
        stored = replace(record, embedding=embedding)
        await self._store.upsert_record(stored)
        logger.info(
            "Indexed track",
            extra={"record_id": record.id, "embedded": embedding is not None},
        )
        return stored

    async def update_track(
        self,
        previous: TrackRecord,
        current: TrackRecord,
        block_on_embedding: bool = True,
    ) -> TrackRecord:
        """Store an edited track, re-embedding only on text changes.

        Args:
            previous: Projection before the edit
            current: Projection after the edit
            block_on_embedding: Fail the update if re-embedding fails

        Raises:
            ValueError: If ``previous`` and ``current`` are different tracks
            NotFoundError: If the track is not stored and its text is unchanged or now blank
        """
        if previous.id != current.id:
            raise ValueError(f"Cannot update track '{previous.id}' with record '{current.id}'")

        if not current.text_fields_differ(previous):
            await self._store.update_payload(current)
            logger.debug("Track text unchanged, embedding kept", extra={"record_id": current.id})
            return current

        try:
            return await self.index_track(current, block_on_embedding=block_on_embedding)
        except EmptyInputError:
            # Nothing left to embed; the old vector no longer describes the track.
            await self._store.update_payload(current)
            await self._store.clear_embedding(current.id)
            logger.warning("Track text is blank, embedding cleared", extra={"record_id": current.id})
            return replace(current, embedding=None)

    async def remove_track(self, record_id: str) -> None:
        """Drop a track from search. Unknown ids are ignored."""
        await self._store.delete_record(record_id)
        logger.info("Removed track from index", extra={"record_id": record_id})
