"""Unit tests for ledger enqueue, lookup and listing."""

import pytest

from transcoder.db.types import JobStatus
from transcoder.jobs.exceptions import JobNotFoundError
from transcoder.jobs.ledger import (
    enqueue_job,
    find_job,
    get_job,
    get_queue_stats,
    list_jobs,
    requeue_job,
    upsert_job,
)
from transcoder.jobs.queue import claim_next_job, mark_done, mark_error


class TestUpsertJob:
    """Tests for upsert_job."""

    def test_inserts_pending_row(self, db_conn):
        job = upsert_job(db_conn, "/media/a.mkv", 1024, now=100)

        assert job.status == JobStatus.PENDING
        assert job.created_on == 100
        assert job.updated_on == 100
        assert job.file_size == 1024
        assert job.error_message is None
        assert job.ffprobe_info is None

    def test_one_row_per_path(self, db_conn):
        """Upserting the same path twice leaves a single row."""
        upsert_job(db_conn, "/media/a.mkv", 1024, now=100)
        upsert_job(db_conn, "/media/a.mkv", 2048, now=200)

        jobs = list(list_jobs(db_conn))
        assert len(jobs) == 1
        assert jobs[0].file_size == 2048

    def test_resets_errored_job(self, db_conn):
        """A job in error comes back as pending with the error cleared."""
        upsert_job(db_conn, "/media/a.mkv", 1024, now=100)
        claimed = claim_next_job(db_conn, now=110)
        mark_error(db_conn, claimed.path, "boom", now=120)

        job = upsert_job(db_conn, "/media/a.mkv", 1024, now=130)

        assert job.status == JobStatus.PENDING
        assert job.error_message is None

    def test_resets_done_job(self, db_conn):
        """A finished job is started over with its metadata cleared."""
        upsert_job(db_conn, "/media/a.mkv", 1024, now=100)
        claimed = claim_next_job(db_conn, now=110)
        mark_done(db_conn, claimed.path, '{"streams": []}', now=120)

        job = upsert_job(db_conn, "/media/a.mkv", 1024, now=130)

        assert job.status == JobStatus.PENDING
        assert job.ffprobe_info is None

    def test_resets_created_on(self, db_conn):
        """A re-enqueued job goes to the back of the queue."""
        upsert_job(db_conn, "/media/a.mkv", 1, now=100)
        upsert_job(db_conn, "/media/b.mkv", 1, now=110)

        upsert_job(db_conn, "/media/a.mkv", 1, now=120)

        claimed = claim_next_job(db_conn, now=130)
        assert claimed.path == "/media/b.mkv"

    def test_updated_on_never_moves_backwards(self, db_conn):
        upsert_job(db_conn, "/media/a.mkv", 1, now=500)

        job = upsert_job(db_conn, "/media/a.mkv", 1, now=100)

        assert job.updated_on > 500

    def test_upsert_in_same_second_advances_updated_on(self, db_conn):
        first = upsert_job(db_conn, "/media/a.mkv", 1, now=100)

        second = upsert_job(db_conn, "/media/a.mkv", 1, now=100)

        assert second.updated_on > first.updated_on

    def test_rejects_negative_size(self, db_conn):
        with pytest.raises(ValueError, match="file_size"):
            upsert_job(db_conn, "/media/a.mkv", -1)

    def test_rejects_empty_path(self, db_conn):
        with pytest.raises(ValueError, match="path"):
            upsert_job(db_conn, "", 1)

    def test_accepts_zero_size(self, db_conn):
        job = upsert_job(db_conn, "/media/empty.mkv", 0)
        assert job.file_size == 0


class TestEnqueueJob:
    """Tests for enqueue_job."""

    def test_inserts_new_path(self, db_conn):
        assert enqueue_job(db_conn, "/media/a.mkv", 10, now=100) is True
        assert get_job(db_conn, "/media/a.mkv").status == JobStatus.PENDING

    def test_leaves_existing_row_alone(self, db_conn):
        """Re-scanning does not reset a job that is already done."""
        upsert_job(db_conn, "/media/a.mkv", 10, now=100)
        claimed = claim_next_job(db_conn, now=110)
        mark_done(db_conn, claimed.path, "{}", now=120)

        assert enqueue_job(db_conn, "/media/a.mkv", 99, now=130) is False

        job = get_job(db_conn, "/media/a.mkv")
        assert job.status == JobStatus.DONE
        assert job.file_size == 10


class TestRequeueJob:
    """Tests for requeue_job."""

    def test_requeues_error_keeping_size(self, db_conn):
        upsert_job(db_conn, "/media/a.mkv", 4096, now=100)
        claimed = claim_next_job(db_conn, now=110)
        mark_error(db_conn, claimed.path, "boom", now=120)

        job = requeue_job(db_conn, "/media/a.mkv", now=130)

        assert job.status == JobStatus.PENDING
        assert job.file_size == 4096
        assert job.error_message is None

    def test_missing_path(self, db_conn):
        with pytest.raises(JobNotFoundError) as exc_info:
            requeue_job(db_conn, "/media/missing.mkv")
        assert exc_info.value.path == "/media/missing.mkv"


class TestLookup:
    """Tests for find_job and get_job."""

    def test_find_missing_returns_none(self, db_conn):
        assert find_job(db_conn, "/media/missing.mkv") is None

    def test_get_missing_raises(self, db_conn):
        with pytest.raises(JobNotFoundError):
            get_job(db_conn, "/media/missing.mkv")

    def test_get_existing(self, db_conn):
        upsert_job(db_conn, "/media/a.mkv", 10, now=100)
        assert get_job(db_conn, "/media/a.mkv").path == "/media/a.mkv"


class TestListJobs:
    """Tests for list_jobs."""

    def test_insertion_order(self, db_conn):
        for name in ("c", "a", "b"):
            upsert_job(db_conn, f"/media/{name}.mkv", 1, now=100)

        paths = [job.path for job in list_jobs(db_conn)]

        assert paths == ["/media/c.mkv", "/media/a.mkv", "/media/b.mkv"]

    def test_filter_by_status(self, db_conn):
        upsert_job(db_conn, "/media/a.mkv", 1, now=100)
        upsert_job(db_conn, "/media/b.mkv", 1, now=101)
        claim_next_job(db_conn, now=110)

        pending = [job.path for job in list_jobs(db_conn, JobStatus.PENDING)]
        processing = [job.path for job in list_jobs(db_conn, JobStatus.PROCESSING)]

        assert pending == ["/media/b.mkv"]
        assert processing == ["/media/a.mkv"]

    def test_order_by_updated_on(self, db_conn):
        upsert_job(db_conn, "/media/a.mkv", 1, now=100)
        upsert_job(db_conn, "/media/b.mkv", 1, now=90)

        paths = [job.path for job in list_jobs(db_conn, order_by="updated_on")]

        assert paths == ["/media/b.mkv", "/media/a.mkv"]

    def test_rejects_unknown_order(self, db_conn):
        with pytest.raises(ValueError, match="order_by"):
            list_jobs(db_conn, order_by="path; DROP TABLE transcode_files")

    def test_empty_ledger(self, db_conn):
        assert list(list_jobs(db_conn)) == []


class TestGetQueueStats:
    """Tests for get_queue_stats."""

    def test_counts_every_status(self, db_conn):
        for i in range(4):
            upsert_job(db_conn, f"/media/{i}.mkv", 1, now=100 + i)
        done = claim_next_job(db_conn, now=110)
        mark_done(db_conn, done.path, "{}", now=111)
        failed = claim_next_job(db_conn, now=112)
        mark_error(db_conn, failed.path, "boom", now=113)
        claim_next_job(db_conn, now=114)

        assert get_queue_stats(db_conn) == {
            "pending": 1,
            "processing": 1,
            "done": 1,
            "error": 1,
            "total": 4,
        }

    def test_empty_ledger(self, db_conn):
        stats = get_queue_stats(db_conn)
        assert stats["total"] == 0
        assert stats["pending"] == 0
