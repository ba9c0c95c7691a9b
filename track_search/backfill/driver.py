"""
Backfill driver: compute embeddings for public tracks that lack one.

Runs in batches until the store reports no more missing embeddings. Each
batch is processed with bounded concurrency; a failing record is logged,
counted and skipped for the rest of the run, so the run always terminates.
Running the driver twice is safe: the second run finds nothing to do.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from track_search.search.exceptions import TrackSearchError
from track_search.search.models import TrackRecord
from track_search.search.vector import TrackStoreProtocol

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

_DEFAULT_BATCH_SIZE = 100
_DEFAULT_CONCURRENCY = 10


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class BackfillReport:
    """Outcome of one backfill run.

    Attributes:
        processed: Records embedded and stored successfully
        failed: Records whose embedding or store write failed
        failed_ids: Ids of the failed records, in failure order
    """

    processed: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        """Process exit status: 0 only when nothing failed."""
        return 1 if self.failed > 0 else 0


# =============================================================================
# BackfillDriver
# =============================================================================


class BackfillDriver:
    """Fills in missing embeddings.

    Usage:
        driver = BackfillDriver(store, provider, batch_size=100, concurrency=10)
        report = await driver.run()
        sys.exit(report.exit_code)
    """

    def __init__(
        self,
        store: TrackStoreProtocol,
        provider: Any,  # EmbeddingProviderProtocol
        batch_size: int = _DEFAULT_BATCH_SIZE,
        concurrency: int = _DEFAULT_CONCURRENCY,
    ) -> None:
        """Initialize the driver.

        Raises:
            ValueError: If batch_size or concurrency is below 1
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self._store = store
        self._provider = provider
        self._batch_size = batch_size
        self._concurrency = concurrency

    @classmethod
    def from_settings(cls, store: TrackStoreProtocol, provider: Any, settings: Any) -> BackfillDriver:
        """Build a driver using the configured batch size and concurrency."""
        return cls(
            store,
            provider,
            batch_size=getattr(settings, "backfill_batch_size", _DEFAULT_BATCH_SIZE),
            concurrency=getattr(settings, "backfill_concurrency", _DEFAULT_CONCURRENCY),
        )

    async def run(self) -> BackfillReport:
        """Embed every public track that has no embedding.

        Returns:
            BackfillReport with processed/failed counts

        Raises:
            StoreError: If a batch cannot be fetched (the run aborts)
        """
        report = BackfillReport()
        semaphore = asyncio.Semaphore(self._concurrency)
        failed: set[str] = set()
        batch_number = 0

        while True:
            batch = await self._store.fetch_missing_embeddings(
                self._batch_size,
                exclude_ids=set(failed),
            )
            if not batch:
                break

            batch_number += 1
            logger.info("Processing backfill batch %d (%d records)", batch_number, len(batch))

            outcomes = await asyncio.gather(
                *(self._process(record, semaphore) for record in batch)
            )
            for record, ok in zip(batch, outcomes, strict=True):
                if ok:
                    report.processed += 1
                else:
                    report.failed += 1
                    report.failed_ids.append(record.id)
                    failed.add(record.id)

        logger.info(
            "Backfill complete",
            extra={"processed": report.processed, "failed": report.failed},
        )
        return report

    async def _process(self, record: TrackRecord, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            try:
                vector = await self._provider.embed_track_metadata(record)
                await self._store.upsert_embedding(record.id, vector)
            except (TrackSearchError, ValueError) as e:
                logger.error(
                    "Failed to backfill track %s: %s",
                    record.id,
                    e,
                    extra={"record_id": record.id},
                )
                return False
        return True
