"""Backfill of missing track embeddings."""

from __future__ import annotations

from track_search.backfill.driver import BackfillDriver, BackfillReport

__all__ = ["BackfillDriver", "BackfillReport"]
