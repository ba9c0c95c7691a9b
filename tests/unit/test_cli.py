"""
Unit tests for the track-search CLI (setup and backfill commands).
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.fakes import FakeEmbeddingProvider
from track_search.backfill.driver import BackfillReport
from track_search.core.config import Settings
from track_search.search.models import TrackRecord
from track_search.search.vector import FakeTrackStore


@pytest.fixture
def cli_env(settings: Settings):
    """Point the CLI at test settings and keep logging configuration untouched."""
    with (
        patch("track_search.cli.get_settings", return_value=settings),
        patch("track_search.cli.setup_structured_logging"),
    ):
        yield settings


class TestRunBackfill:
    """Tests for run_backfill with injected fakes."""

    @pytest.mark.asyncio
    async def test_embeds_missing_tracks(self, settings: Settings) -> None:
        from track_search.cli import run_backfill

        store = FakeTrackStore()
        for i in range(5):
            await store.upsert_record(TrackRecord(id=f"t{i}", title=f"Song {i}"))
        provider = FakeEmbeddingProvider()

        report = await run_backfill(settings, store=store, provider=provider, batch_size=2)

        assert report.processed == 5
        assert provider.is_ready
        assert all(store.get(f"t{i}").embedding is not None for i in range(5))

    @pytest.mark.asyncio
    async def test_model_load_failure_aborts_before_fetching(self, settings: Settings) -> None:
        from track_search.cli import run_backfill
        from track_search.search.exceptions import ModelLoadError

        store = FakeTrackStore()

        with pytest.raises(ModelLoadError):
            await run_backfill(settings, store=store, provider=FakeEmbeddingProvider(fail_load=True))

        assert "fetch_missing_embeddings" not in store.calls


class TestMain:
    """Tests for exit codes of main()."""

    def test_setup_success(self, cli_env: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        from track_search.cli import main

        with patch("track_search.cli.QdrantTrackStore") as store_cls:
            store = MagicMock()
            store.ensure_collections = AsyncMock()
            store_cls.return_value.__aenter__ = AsyncMock(return_value=store)
            store_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            exit_code = main(["setup"])

        assert exit_code == 0
        store.ensure_collections.assert_awaited_once()
        assert "ready" in capsys.readouterr().out

    def test_setup_failure(self, cli_env: Settings) -> None:
        from track_search.cli import main
        from track_search.search.exceptions import StoreUnavailableError

        with patch("track_search.cli.QdrantTrackStore") as store_cls:
            store_cls.return_value.__aenter__ = AsyncMock(
                side_effect=StoreUnavailableError("Failed to connect to Qdrant")
            )
            store_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            assert main(["setup"]) == 1

    @pytest.mark.parametrize(
        "report,expected",
        [
            (BackfillReport(processed=10), 0),
            (BackfillReport(processed=9, failed=1, failed_ids=["t42"]), 1),
        ],
    )
    def test_backfill_exit_code_follows_report(
        self, cli_env: Settings, report: BackfillReport, expected: int
    ) -> None:
        from track_search.cli import main

        with patch("track_search.cli.run_backfill", AsyncMock(return_value=report)) as run:
            assert main(["backfill", "--batch-size", "50", "--concurrency", "4"]) == expected

        assert run.call_args.kwargs == {"batch_size": 50, "concurrency": 4}

    def test_backfill_store_outage(self, cli_env: Settings) -> None:
        from track_search.cli import main
        from track_search.search.exceptions import StoreUnavailableError

        with patch(
            "track_search.cli.run_backfill",
            AsyncMock(side_effect=StoreUnavailableError("Qdrant down")),
        ):
            assert main(["backfill"]) == 1

    def test_rejects_non_positive_concurrency(self, cli_env: Settings) -> None:
        from track_search.cli import main

        with pytest.raises(SystemExit):
            main(["backfill", "--concurrency", "0"])

    def test_command_required(self, cli_env: Settings) -> None:
        from track_search.cli import main

        with pytest.raises(SystemExit):
            main([])
