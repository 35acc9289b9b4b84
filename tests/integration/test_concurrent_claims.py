"""Concurrency tests for the claim protocol.

Each simulated worker is a thread with its own connection to a shared
database file, the same way separate worker processes share the ledger.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from transcoder.db.connection import get_connection
from transcoder.db.types import JobStatus
from transcoder.jobs.ledger import get_queue_stats, list_jobs, upsert_job
from transcoder.jobs.queue import claim_next_job, mark_done, recover_stale_jobs

pytestmark = pytest.mark.integration


def _claim_round(db_path: Path, workers: int) -> list[str | None]:
    """Have every worker attempt one claim at the same moment."""
    barrier = threading.Barrier(workers)

    def claim(index: int) -> str | None:
        with get_connection(db_path, timeout=10.0) as conn:
            barrier.wait()
            job = claim_next_job(conn, f"w{index}", liveness_timeout=3600)
            return job.path if job is not None else None

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(claim, range(workers)))


class TestConcurrentClaims:
    """Concurrent workers never receive the same row."""

    def test_single_row_two_workers(self, db_conn, db_path: Path):
        """Scenario B: exactly one of two workers gets the only job."""
        upsert_job(db_conn, "a.mp4", 1000)

        results = _claim_round(db_path, workers=2)

        claimed = [path for path in results if path is not None]
        assert claimed == ["a.mp4"]
        assert results.count(None) == 1

    @pytest.mark.parametrize(
        ("workers", "jobs"),
        [(4, 2), (4, 4), (3, 8), (8, 5)],
    )
    def test_claims_equal_min_of_workers_and_jobs(
        self, db_conn, db_path: Path, workers: int, jobs: int
    ):
        for i in range(jobs):
            upsert_job(db_conn, f"/media/{i}.mkv", 1)

        results = _claim_round(db_path, workers=workers)

        claimed = [path for path in results if path is not None]
        assert len(claimed) == min(workers, jobs)
        assert len(set(claimed)) == len(claimed)
        stats = get_queue_stats(db_conn)
        assert stats["processing"] == len(claimed)
        assert stats["pending"] == jobs - len(claimed)

    def test_drain_processes_each_job_once(self, db_conn, db_path: Path):
        """Workers looping until empty finish every job exactly once."""
        jobs = 30
        for i in range(jobs):
            upsert_job(db_conn, f"/media/{i}.mkv", 1)
        finished: list[str] = []
        lock = threading.Lock()

        def drain(index: int) -> None:
            with get_connection(db_path, timeout=10.0) as conn:
                while True:
                    job = claim_next_job(conn, f"w{index}", liveness_timeout=3600)
                    if job is None:
                        return
                    mark_done(conn, job.path, "{}", claimed_on=job.claim_token)
                    with lock:
                        finished.append(job.path)

        with ThreadPoolExecutor(max_workers=5) as executor:
            list(executor.map(drain, range(5)))

        assert sorted(finished) == sorted(f"/media/{i}.mkv" for i in range(jobs))
        assert all(job.status == JobStatus.DONE for job in list_jobs(db_conn))

    def test_reaper_and_workers_do_not_lose_rows(self, db_conn, db_path: Path):
        """Recovery running alongside claims never drops or duplicates rows."""
        for i in range(10):
            upsert_job(db_conn, f"/media/{i}.mkv", 1, now=0)

        stop = threading.Event()

        def reap() -> None:
            with get_connection(db_path, timeout=10.0) as conn:
                while not stop.is_set():
                    recover_stale_jobs(conn, liveness_timeout=3600)

        reaper = threading.Thread(target=reap)
        reaper.start()
        try:
            results = _claim_round(db_path, workers=6)
        finally:
            stop.set()
            reaper.join(timeout=10)

        claimed = [path for path in results if path is not None]
        assert len(claimed) == 6
        assert len(set(claimed)) == 6
        assert get_queue_stats(db_conn)["total"] == 10
