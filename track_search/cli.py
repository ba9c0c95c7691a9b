"""
Operational commands for track search.

Usage:
    track-search setup                 # create Qdrant collections and indexes
    track-search backfill              # embed every public track missing one
    track-search backfill --batch-size 50 --concurrency 4

Exit status is 0 on success and 1 on any failure; ``backfill`` exits 1 when
at least one record could not be embedded.

Environment Variables:
    QDRANT_URL: Qdrant endpoint (default: http://localhost:6333)
    EMBEDDING_MODEL: sentence-transformers model name
    TRACK_SEARCH_LOG_LEVEL: Log level (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any

from track_search.backfill.driver import BackfillDriver, BackfillReport
from track_search.core.config import Settings, get_settings
from track_search.core.logging import setup_structured_logging
from track_search.embedding.provider import EmbeddingProvider
from track_search.search.exceptions import ModelLoadError, StoreError
from track_search.search.vector import QdrantTrackStore

logger = logging.getLogger(__name__)


# =============================================================================
# Commands
# =============================================================================


async def run_setup(settings: Settings, store: Any = None) -> None:
    """Create the track and user collections with their indexes.

    Raises:
        StoreError: If Qdrant is unreachable or creation fails
    """
    if store is not None:
        await store.ensure_collections()
        return

    async with QdrantTrackStore(settings=settings) as qdrant:
        await qdrant.ensure_collections()


async def run_backfill(
    settings: Settings,
    store: Any = None,
    provider: Any = None,
    batch_size: int | None = None,
    concurrency: int | None = None,
) -> BackfillReport:
    """Embed every public track that has no embedding yet.

    The model is loaded before the first batch so a broken model fails the
    run once instead of failing every record.

    Raises:
        ModelLoadError: If the embedding model cannot be loaded
        StoreError: If a batch cannot be fetched
    """
    owned_store: QdrantTrackStore | None = None
    owned_provider: EmbeddingProvider | None = None

    if store is None:
        owned_store = QdrantTrackStore(settings=settings)
        await owned_store.connect()
        store = owned_store
    if provider is None:
        owned_provider = EmbeddingProvider(
            model_name=settings.embedding_model,
            dimension=settings.embedding_dimension,
        )
        provider = owned_provider

    try:
        await provider.initialize()
        driver = BackfillDriver(
            store,
            provider,
            batch_size=batch_size or settings.backfill_batch_size,
            concurrency=concurrency or settings.backfill_concurrency,
        )
        return await driver.run()
    finally:
        if owned_provider is not None:
            owned_provider.close()
        if owned_store is not None:
            await owned_store.close()


# =============================================================================
# Entry Point
# =============================================================================


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="track-search",
        description="Track search maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup", help="Create Qdrant collections and payload indexes")

    backfill = subparsers.add_parser("backfill", help="Embed public tracks missing an embedding")
    backfill.add_argument(
        "--batch-size",
        type=_positive_int,
        default=None,
        help="Records fetched per batch (default: BACKFILL_BATCH_SIZE or 100)",
    )
    backfill.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help="Records embedded in parallel (default: BACKFILL_CONCURRENCY or 10)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_structured_logging(log_file_path=None)

    if args.command == "setup":
        try:
            asyncio.run(run_setup(settings))
        except StoreError as e:
            print(f"✗ Setup failed: {e}", file=sys.stderr)
            return 1
        print(f"✓ Collections '{settings.tracks_collection}' and '{settings.users_collection}' ready")
        return 0

    try:
        report = asyncio.run(
            run_backfill(settings, batch_size=args.batch_size, concurrency=args.concurrency)
        )
    except (StoreError, ModelLoadError) as e:
        print(f"✗ Backfill aborted: {e}", file=sys.stderr)
        return 1

    print(f"Backfill complete: {report.processed} processed, {report.failed} failed")
    if report.failed_ids:
        print(f"✗ Failed ids: {', '.join(report.failed_ids)}", file=sys.stderr)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
