"""Claim protocol and lifecycle transitions for the transcode ledger.

Every status change is a conditional update guarded by the state the
caller expects the row to be in:
- Atomic job claiming with BEGIN IMMEDIATE transactions
- Completion/failure guarded by status and the claim's version token
- Heartbeats that extend a live claim
- Stale claim recovery for crashed workers

``updated_on`` is the version token. Transitions set it to max(now,
previous), so it never moves backwards. A claim can only change hands
after the row went stale (so the new token is past the old one) or after
a re-enqueue, which bumps the token strictly forward; either way two
claims of the same row never share a token.
"""

import logging
import os
import sqlite3
from dataclasses import replace

from transcoder.core.datetime_utils import epoch_now
from transcoder.db.connection import immediate_transaction
from transcoder.db.queries import select_job, select_next_claimable
from transcoder.db.types import JobStatus, TranscodeJob
from transcoder.jobs._write import run_write
from transcoder.jobs.exceptions import (
    ClaimLostError,
    ConflictError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

# Default liveness timeout (seconds) - claims without a heartbeat for this
# long are considered abandoned and may be reclaimed
DEFAULT_LIVENESS_TIMEOUT = 3600  # 1 hour


def _next_token(now: int, previous: int) -> int:
    return max(now, previous)


def claim_next_job(
    conn: sqlite3.Connection,
    worker_id: str | None = None,
    *,
    liveness_timeout: int = DEFAULT_LIVENESS_TIMEOUT,
    now: int | None = None,
) -> TranscodeJob | None:
    """Atomically claim the next available job from the ledger.

    Eligible rows are pending ones, and processing ones whose last
    heartbeat is more than ``liveness_timeout`` seconds old. The oldest
    created_on wins. Done and error rows are never claimed.

    Uses BEGIN IMMEDIATE so the select and the update run under SQLite's
    write lock: concurrent callers, in this process or another, cannot
    both receive the same row.

    Args:
        conn: Database connection (one per worker).
        worker_id: Identifier used in log messages (defaults to the PID).
        liveness_timeout: Seconds after which a processing claim is stale.
        now: Epoch seconds to use instead of the current time.

    Returns:
        The claimed job (status PROCESSING, fresh updated_on), or None if
        nothing is claimable.

    Raises:
        ConflictError: If the write lock could not be acquired.
    """
    if worker_id is None:
        worker_id = str(os.getpid())

    def _claim() -> TranscodeJob | None:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            candidate = select_next_claimable(conn, ts - liveness_timeout)
            if candidate is None:
                return None

            token = _next_token(ts, candidate.updated_on)
            cursor = conn.execute(
                """
                UPDATE transcode_files
                SET status = 'processing',
                    updated_on = ?
                WHERE path = ? AND status = ? AND updated_on = ?
                """,
                (token, candidate.path, candidate.status.value, candidate.updated_on),
            )
            if cursor.rowcount != 1:
                raise ConflictError(
                    f"Job {candidate.path} changed while being claimed"
                )

        if candidate.status == JobStatus.PROCESSING:
            logger.warning(
                "Worker %s reclaimed stale job %s (last heartbeat %ds ago)",
                worker_id,
                candidate.path,
                ts - candidate.updated_on,
            )
        else:
            logger.info("Worker %s claimed job %s", worker_id, candidate.path)
        return replace(candidate, status=JobStatus.PROCESSING, updated_on=token)

    return run_write(_claim, "claim a job")


def _check_claim(
    job: TranscodeJob | None,
    path: str,
    target: JobStatus,
    claimed_on: int | None,
) -> TranscodeJob:
    """Verify the caller still holds a processing claim on the row.

    Raises:
        InvalidTransitionError: If the row is missing or not processing.
        ClaimLostError: If the row was reclaimed since claimed_on.
    """
    if job is None:
        raise InvalidTransitionError(path, None, target)
    if job.status != JobStatus.PROCESSING or not job.status.can_transition_to(target):
        raise InvalidTransitionError(path, job.status, target)
    if claimed_on is not None and job.updated_on != claimed_on:
        raise ClaimLostError(path, target, claimed_on, job.updated_on)
    return job


def mark_done(
    conn: sqlite3.Connection,
    path: str,
    ffprobe_info: str | None,
    *,
    claimed_on: int | None = None,
    now: int | None = None,
) -> TranscodeJob:
    """Record successful completion of a claimed job.

    Args:
        conn: Database connection.
        path: Job path.
        ffprobe_info: Serialized probe metadata, stored verbatim.
        claimed_on: Claim token (updated_on of the claimed row). When given,
            the update only applies if nobody has touched the row since.
        now: Epoch seconds to use instead of the current time.

    Returns:
        The job as stored after the transition.

    Raises:
        InvalidTransitionError: If the row is not processing (including a
            row the reaper already returned to pending).
        ClaimLostError: If the claim token no longer matches.
        ConflictError: If the write lock could not be acquired.
    """

    def _done() -> TranscodeJob:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            job = _check_claim(
                select_job(conn, path), path, JobStatus.DONE, claimed_on
            )
            token = _next_token(ts, job.updated_on)
            conn.execute(
                """
                UPDATE transcode_files
                SET status = 'done',
                    updated_on = ?,
                    error_message = NULL,
                    ffprobe_info = ?
                WHERE path = ? AND status = 'processing' AND updated_on = ?
                """,
                (token, ffprobe_info, path, job.updated_on),
            )
        logger.info("Job %s done", path)
        return replace(
            job,
            status=JobStatus.DONE,
            updated_on=token,
            error_message=None,
            ffprobe_info=ffprobe_info,
        )

    return run_write(_done, f"mark job {path} done")


def mark_error(
    conn: sqlite3.Connection,
    path: str,
    message: str,
    *,
    claimed_on: int | None = None,
    now: int | None = None,
) -> TranscodeJob:
    """Record failure of a claimed job.

    The message is stored as given; truncating or sanitizing it is the
    caller's job.

    Raises:
        ValueError: If message is empty or whitespace.
        InvalidTransitionError: If the row is not processing.
        ClaimLostError: If the claim token no longer matches.
        ConflictError: If the write lock could not be acquired.
    """
    if not message or not message.strip():
        raise ValueError("error message must be non-empty")

    def _error() -> TranscodeJob:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            job = _check_claim(
                select_job(conn, path), path, JobStatus.ERROR, claimed_on
            )
            token = _next_token(ts, job.updated_on)
            conn.execute(
                """
                UPDATE transcode_files
                SET status = 'error',
                    updated_on = ?,
                    error_message = ?
                WHERE path = ? AND status = 'processing' AND updated_on = ?
                """,
                (token, message, path, job.updated_on),
            )
        logger.info("Job %s failed: %s", path, message)
        return replace(
            job, status=JobStatus.ERROR, updated_on=token, error_message=message
        )

    return run_write(_error, f"mark job {path} failed")


def update_heartbeat(
    conn: sqlite3.Connection,
    path: str,
    claimed_on: int,
    *,
    now: int | None = None,
) -> int:
    """Extend a live claim by bumping updated_on.

    Should be called periodically by workers running long jobs so the
    reaper does not consider them abandoned.

    Args:
        conn: Database connection.
        path: Job path.
        claimed_on: Current claim token.
        now: Epoch seconds to use instead of the current time.

    Returns:
        The new claim token, to be used for the next heartbeat and for
        mark_done/mark_error.

    Raises:
        InvalidTransitionError: If the row is no longer processing.
        ClaimLostError: If the claim token no longer matches.
    """

    def _beat() -> int:
        ts = now if now is not None else epoch_now()
        with immediate_transaction(conn):
            job = _check_claim(
                select_job(conn, path), path, JobStatus.PROCESSING, claimed_on
            )
            token = _next_token(ts, job.updated_on)
            conn.execute(
                """
                UPDATE transcode_files
                SET updated_on = ?
                WHERE path = ? AND status = 'processing' AND updated_on = ?
                """,
                (token, path, job.updated_on),
            )
        return token

    return run_write(_beat, f"heartbeat job {path}")


def recover_stale_jobs(
    conn: sqlite3.Connection,
    *,
    liveness_timeout: int = DEFAULT_LIVENESS_TIMEOUT,
    now: int | None = None,
) -> list[str]:
    """Return abandoned claims to pending.

    Rows in PROCESSING whose updated_on is more than ``liveness_timeout``
    seconds old are reset to PENDING. The update is conditional on the
    same predicate, so a worker's mark_done that commits first wins and
    the row is left alone; if the recovery commits first, the worker's
    later mark_done fails with InvalidTransitionError.

    error_message and ffprobe_info are not modified.

    Args:
        conn: Database connection.
        liveness_timeout: How long without heartbeat before recovery.
        now: Epoch seconds to use instead of the current time.

    Returns:
        Paths of the recovered jobs.

    Raises:
        ConflictError: If the write lock could not be acquired.
    """

    def _recover() -> list[str]:
        ts = now if now is not None else epoch_now()
        cutoff = ts - liveness_timeout
        with immediate_transaction(conn):
            rows = conn.execute(
                """
                SELECT path FROM transcode_files
                WHERE status = 'processing' AND updated_on < ?
                ORDER BY created_on ASC, rowid ASC
                """,
                (cutoff,),
            ).fetchall()
            if rows:
                conn.execute(
                    """
                    UPDATE transcode_files
                    SET status = 'pending',
                        updated_on = max(?, updated_on)
                    WHERE status = 'processing' AND updated_on < ?
                    """,
                    (ts, cutoff),
                )
        return [row[0] for row in rows]

    paths = run_write(_recover, "recover stale jobs")
    if paths:
        logger.info("Recovered %d stale job(s)", len(paths))
        for path in paths:
            logger.debug("Recovered stale job %s", path)
    return paths
