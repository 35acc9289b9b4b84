"""Read and write queries for the transcode_files table.

These functions do NOT manage transactions. Callers in transcoder.jobs
wrap them in immediate_transaction() so that every multi-statement
sequence is atomic.
"""

import sqlite3
from collections.abc import Iterator

from transcoder.db.types import JobStatus, TranscodeJob

JOB_COLUMNS = (
    "path, status, created_on, updated_on, error_message, file_size, ffprobe_info"
)

# Whitelist of orderings for iter_jobs (prevent SQL injection)
JOB_ORDERINGS: dict[str, str] = {
    "insertion": "rowid ASC",
    "updated_on": "updated_on ASC, rowid ASC",
    "created_on": "created_on ASC, rowid ASC",
}


def _row_to_job(row: sqlite3.Row) -> TranscodeJob:
    """Convert a database row to TranscodeJob using named columns.

    Raises:
        ValueError: If the stored status is not a known JobStatus.
    """
    return TranscodeJob(
        path=row["path"],
        status=JobStatus(row["status"]),
        created_on=row["created_on"],
        updated_on=row["updated_on"],
        file_size=row["file_size"],
        error_message=row["error_message"],
        ffprobe_info=row["ffprobe_info"],
    )


def select_job(conn: sqlite3.Connection, path: str) -> TranscodeJob | None:
    """Get a job by path.

    Args:
        conn: Database connection.
        path: Source file path (the ledger key).

    Returns:
        TranscodeJob if found, None otherwise.
    """
    cursor = conn.execute(
        f"SELECT {JOB_COLUMNS} FROM transcode_files WHERE path = ?",
        (path,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return _row_to_job(row)


def select_next_claimable(
    conn: sqlite3.Connection, stale_before: int
) -> TranscodeJob | None:
    """Find the oldest row a worker may claim.

    Eligible rows are pending, or processing with a heartbeat older than
    ``stale_before``. Ties on created_on fall back to insertion order.
    """
    cursor = conn.execute(
        f"""
        SELECT {JOB_COLUMNS} FROM transcode_files
        WHERE status = 'pending'
           OR (status = 'processing' AND updated_on < ?)
        ORDER BY created_on ASC, rowid ASC
        LIMIT 1
        """,
        (stale_before,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return _row_to_job(row)


def iter_jobs(
    conn: sqlite3.Connection,
    status: JobStatus | None = None,
    order_by: str = "insertion",
) -> Iterator[TranscodeJob]:
    """Lazily iterate over jobs, optionally filtered by status.

    Args:
        conn: Database connection.
        status: Only yield jobs in this state (None = all).
        order_by: One of JOB_ORDERINGS.

    Yields:
        TranscodeJob records, one cursor row at a time.

    Raises:
        ValueError: If order_by is not a known ordering.
    """
    if order_by not in JOB_ORDERINGS:
        raise ValueError(
            f"Invalid order_by '{order_by}'. Valid: {', '.join(JOB_ORDERINGS)}"
        )

    query = f"SELECT {JOB_COLUMNS} FROM transcode_files"
    params: tuple = ()
    if status is not None:
        query += " WHERE status = ?"
        params = (status.value,)
    query += f" ORDER BY {JOB_ORDERINGS[order_by]}"

    cursor = conn.execute(query, params)
    for row in cursor:
        yield _row_to_job(row)


def count_jobs_by_status(conn: sqlite3.Connection) -> dict[str, int]:
    """Count rows per status value."""
    cursor = conn.execute(
        "SELECT status, COUNT(*) FROM transcode_files GROUP BY status"
    )
    return {row[0]: row[1] for row in cursor.fetchall()}


def upsert_job_row(
    conn: sqlite3.Connection, path: str, file_size: int, now: int
) -> None:
    """Insert a pending row, or reset an existing one to pending.

    A reset row gets a fresh created_on, while updated_on never moves
    backwards so the heartbeat/version column stays monotonic.
    """
    conn.execute(
        """
        INSERT INTO transcode_files (
            path, status, created_on, updated_on,
            error_message, file_size, ffprobe_info
        ) VALUES (?, 'pending', ?, ?, NULL, ?, NULL)
        ON CONFLICT(path) DO UPDATE SET
            status = 'pending',
            created_on = excluded.created_on,
            updated_on = max(excluded.updated_on, transcode_files.updated_on + 1),
            error_message = NULL,
            file_size = excluded.file_size,
            ffprobe_info = NULL
        """,
        (path, now, now, file_size),
    )


def insert_job_if_absent(
    conn: sqlite3.Connection, path: str, file_size: int, now: int
) -> bool:
    """Insert a pending row unless the path is already in the ledger.

    Returns:
        True if a row was inserted.
    """
    cursor = conn.execute(
        """
        INSERT INTO transcode_files (
            path, status, created_on, updated_on,
            error_message, file_size, ffprobe_info
        ) VALUES (?, 'pending', ?, ?, NULL, ?, NULL)
        ON CONFLICT(path) DO NOTHING
        """,
        (path, now, now, file_size),
    )
    return cursor.rowcount > 0
