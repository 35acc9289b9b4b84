"""Unit tests for the stale-claim reaper."""

import asyncio
from pathlib import Path

import pytest

from transcoder.db.types import JobStatus
from transcoder.jobs.ledger import get_job, upsert_job
from transcoder.jobs.queue import claim_next_job
from transcoder.jobs.reaper import ReaperEvent, StaleClaimReaper


def _abandon(db_conn, path: str, now: int) -> None:
    """Enqueue and claim a job that nobody will finish."""
    upsert_job(db_conn, path, 1, now=now)
    claim_next_job(db_conn, liveness_timeout=30, now=now)


class TestStaleClaimReaper:
    """Tests for StaleClaimReaper.run_once and listeners."""

    def test_rejects_bad_settings(self, db_path: Path):
        with pytest.raises(ValueError):
            StaleClaimReaper(db_path, liveness_timeout=0)
        with pytest.raises(ValueError):
            StaleClaimReaper(db_path, interval=0)

    def test_run_once_recovers_stale_claims(self, db_conn, db_path: Path):
        _abandon(db_conn, "/media/a.mkv", now=0)
        reaper = StaleClaimReaper(db_path, liveness_timeout=30, clock=lambda: 31)

        event = reaper.run_once()

        assert event.reclaimed == ("/media/a.mkv",)
        assert event.count == 1
        assert event.timestamp == 31
        assert event.error is None
        assert get_job(db_conn, "/media/a.mkv").status == JobStatus.PENDING

    def test_run_once_leaves_live_claims(self, db_conn, db_path: Path):
        _abandon(db_conn, "/media/a.mkv", now=0)
        reaper = StaleClaimReaper(db_path, liveness_timeout=30, clock=lambda: 30)

        event = reaper.run_once()

        assert event.count == 0
        assert get_job(db_conn, "/media/a.mkv").status == JobStatus.PROCESSING

    def test_stats_accumulate(self, db_conn, db_path: Path):
        _abandon(db_conn, "/media/a.mkv", now=0)
        now = [31]
        reaper = StaleClaimReaper(db_path, liveness_timeout=30, clock=lambda: now[0])

        reaper.run_once()
        now[0] = 40
        reaper.run_once()

        assert reaper.stats.to_dict() == {
            "scans": 2,
            "failed_scans": 0,
            "total_reclaimed": 1,
            "last_scan": 40,
            "last_error": None,
        }

    def test_listeners_receive_events(self, db_conn, db_path: Path):
        _abandon(db_conn, "/media/a.mkv", now=0)
        reaper = StaleClaimReaper(db_path, liveness_timeout=30, clock=lambda: 100)
        events: list[ReaperEvent] = []
        reaper.add_listener(events.append)

        reaper.run_once()

        assert len(events) == 1
        assert events[0].reclaimed == ("/media/a.mkv",)

    def test_failing_listener_does_not_stop_others(self, db_path: Path):
        reaper = StaleClaimReaper(db_path, liveness_timeout=30)
        events: list[ReaperEvent] = []

        def broken(event: ReaperEvent) -> None:
            raise RuntimeError("listener bug")

        reaper.add_listener(broken)
        reaper.add_listener(events.append)

        reaper.run_once()

        assert len(events) == 1

    def test_scan_failure_is_reported_not_raised(self, tmp_path: Path):
        """An unreachable database is logged and retried next tick."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        reaper = StaleClaimReaper(blocker / "ledger.sqlite3", liveness_timeout=30)

        event = reaper.run_once()

        assert event.error is not None
        assert event.count == 0
        assert reaper.stats.failed_scans == 1
        assert reaper.stats.last_error == event.error


class TestStaleClaimReaperLoop:
    """Tests for the async reaper loop."""

    @pytest.mark.asyncio
    async def test_scans_until_stopped(self, db_conn, db_path: Path):
        _abandon(db_conn, "/media/a.mkv", now=0)
        reaper = StaleClaimReaper(
            db_path, liveness_timeout=30, interval=0.05, clock=lambda: 100
        )
        loop = asyncio.get_running_loop()
        scanned = asyncio.Event()
        # Scans run in a worker thread
        reaper.add_listener(lambda event: loop.call_soon_threadsafe(scanned.set))

        task = asyncio.create_task(reaper.run())
        await asyncio.wait_for(scanned.wait(), timeout=5)
        assert reaper.is_running

        reaper.stop()
        await asyncio.wait_for(task, timeout=5)

        assert not reaper.is_running
        assert reaper.stats.scans >= 1
        assert get_job(db_conn, "/media/a.mkv").status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_stop_before_start_is_harmless(self, db_path: Path):
        reaper = StaleClaimReaper(db_path, interval=0.05)
        reaper.stop()
        assert not reaper.is_running
