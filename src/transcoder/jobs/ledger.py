"""Job ledger operations: enqueue, lookup and listing.

Rows enter the ledger here and nowhere else. Status changes after
insertion go through transcoder.jobs.queue.
"""

import logging
import sqlite3
from collections.abc import Iterator

from transcoder.core.datetime_utils import epoch_now
from transcoder.db.connection import immediate_transaction
from transcoder.db.queries import (
    JOB_ORDERINGS,
    count_jobs_by_status,
    insert_job_if_absent,
    iter_jobs,
    select_job,
    upsert_job_row,
)
from transcoder.db.types import JobStatus, TranscodeJob
from transcoder.jobs._write import run_write
from transcoder.jobs.exceptions import JobNotFoundError

logger = logging.getLogger(__name__)


def _validate_job_input(path: str, file_size: int) -> None:
    if not path:
        raise ValueError("path must be a non-empty string")
    if file_size < 0:
        raise ValueError(f"file_size must be >= 0, got {file_size}")


def upsert_job(
    conn: sqlite3.Connection,
    path: str,
    file_size: int,
    *,
    now: int | None = None,
) -> TranscodeJob:
    """Insert a job, or reset an existing one to pending.

    Re-submitting a path starts it over regardless of its current status:
    error_message and ffprobe_info are cleared, file_size is replaced and
    the row becomes claimable again. Concurrent upserts of the same path
    resolve as last-writer-wins.

    Args:
        conn: Database connection.
        path: Source file path (ledger key).
        file_size: Size of the source file in bytes.
        now: Epoch seconds to use instead of the current time.

    Returns:
        The job as stored after the write.

    Raises:
        ValueError: If path is empty or file_size is negative.
        ConflictError: If the write lock could not be acquired.
    """
    _validate_job_input(path, file_size)

    def _upsert() -> TranscodeJob:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            previous = select_job(conn, path)
            upsert_job_row(conn, path, file_size, ts)
            job = select_job(conn, path)
        if previous is not None:
            logger.info(
                "Re-enqueued %s (was %s)", path, previous.status.value
            )
        else:
            logger.debug("Enqueued %s (%d bytes)", path, file_size)
        assert job is not None  # nosec B101 - row was written in this transaction
        return job

    return run_write(_upsert, f"upsert job {path}")


def enqueue_job(
    conn: sqlite3.Connection,
    path: str,
    file_size: int,
    *,
    now: int | None = None,
) -> bool:
    """Insert a pending job unless the path is already in the ledger.

    Used by directory scans so that re-scanning a library does not reset
    jobs that are already done or in progress.

    Returns:
        True if a new row was created.
    """
    _validate_job_input(path, file_size)

    def _enqueue() -> bool:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            return insert_job_if_absent(conn, path, file_size, ts)

    created = run_write(_enqueue, f"enqueue job {path}")
    if created:
        logger.debug("Enqueued %s (%d bytes)", path, file_size)
    return created


def requeue_job(
    conn: sqlite3.Connection, path: str, *, now: int | None = None
) -> TranscodeJob:
    """Reset an existing job to pending, keeping its recorded file size.

    This is the manual retry path for jobs that ended in error.

    Raises:
        JobNotFoundError: If the path is not in the ledger.
    """

    def _requeue() -> TranscodeJob:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            existing = select_job(conn, path)
            if existing is None:
                raise JobNotFoundError(path)
            upsert_job_row(conn, path, existing.file_size, ts)
            job = select_job(conn, path)
        logger.info("Requeued %s (was %s)", path, existing.status.value)
        assert job is not None  # nosec B101
        return job

    return run_write(_requeue, f"requeue job {path}")


def find_job(conn: sqlite3.Connection, path: str) -> TranscodeJob | None:
    """Get a job by path, or None if it is not in the ledger."""
    return select_job(conn, path)


def get_job(conn: sqlite3.Connection, path: str) -> TranscodeJob:
    """Get a job by path.

    Raises:
        JobNotFoundError: If the path is not in the ledger.
    """
    job = select_job(conn, path)
    if job is None:
        raise JobNotFoundError(path)
    return job


def list_jobs(
    conn: sqlite3.Connection,
    status: JobStatus | None = None,
    *,
    order_by: str = "insertion",
) -> Iterator[TranscodeJob]:
    """Lazily list jobs, optionally filtered by status.

    Rows come back in insertion order unless order_by="updated_on".
    The iterator reads from a live cursor; it is a read-only view and
    must not be used to drive writes on the same connection.
    """
    if order_by not in JOB_ORDERINGS:
        raise ValueError(
            f"Invalid order_by '{order_by}'. Valid: {', '.join(JOB_ORDERINGS)}"
        )
    return iter_jobs(conn, status, order_by=order_by)


def get_queue_stats(conn: sqlite3.Connection) -> dict[str, int]:
    """Get queue statistics.

    Returns:
        Dictionary with a count per status plus "total".
    """
    counts = count_jobs_by_status(conn)
    stats = {status.value: counts.get(status.value, 0) for status in JobStatus}
    stats["total"] = sum(stats.values())
    return stats
