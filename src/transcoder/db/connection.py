"""Opening ledger connections and running writes against a shared SQLite file.

Workers, the reaper and the CLI each hold their own connection; SQLite's
file lock is the only coordination between them. Writes that must read
and then update take the write lock up front (immediate_transaction) and
are retried with backoff while another process holds it
(execute_with_retry).
"""

from __future__ import annotations

import logging
import random
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from transcoder.db.schema import TABLE_NAME, create_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")

# journal_mode=WAL lets readers (CLI, /api/jobs) run while a worker writes
_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("temp_store", "MEMORY"),
)


def get_default_db_path() -> Path:
    """Return ~/.transcoder/transcoder.sqlite3."""
    return Path.home() / ".transcoder" / "transcoder.sqlite3"


def open_connection(db_path: Path, timeout: float = 30.0) -> sqlite3.Connection:
    """Open a ledger connection, creating the file and table if needed.

    Connections are not shared between threads; every worker thread or
    process opens its own.

    Args:
        db_path: Database file, or ":memory:".
        timeout: Seconds to wait for another connection's write lock.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=timeout)
    for name, value in _PRAGMAS:
        conn.execute(f"PRAGMA {name} = {value}")
    conn.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)}")
    conn.row_factory = sqlite3.Row

    create_schema(conn)
    return conn


@contextmanager
def get_connection(
    db_path: Path | None = None, timeout: float = 30.0
) -> Iterator[sqlite3.Connection]:
    """open_connection() as a context manager; the connection is closed on exit."""
    conn = open_connection(db_path or get_default_db_path(), timeout=timeout)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def immediate_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block under BEGIN IMMEDIATE; commit on success, roll back on error.

    The write lock is held from the first statement, so a row selected
    inside the block cannot be changed by another connection before the
    block's UPDATE runs.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def is_lock_error(error: sqlite3.OperationalError) -> bool:
    """Return True for "database is locked" / SQLITE_BUSY errors."""
    message = str(error).casefold()
    return "locked" in message or "busy" in message


def execute_with_retry(
    func: Callable[[], T],
    max_retries: int = 5,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    jitter: float = 0.1,
) -> T:
    """Call func, retrying with exponential backoff while the database is locked.

    Only lock contention is retried. Any other error, and the lock error
    of the final attempt, propagates unchanged.

    Args:
        func: The write to run; called up to max_retries + 1 times.
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry, doubled for each one after.
        max_delay: Upper bound on a single delay.
        jitter: Fraction the delay is randomly varied by.
    """
    attempts = max_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            result = func()
        except sqlite3.OperationalError as e:
            if not is_lock_error(e) or attempt == attempts:
                if is_lock_error(e):
                    logger.warning(
                        "Ledger still locked after %d attempts: %s", attempts, e
                    )
                raise
            delay = min(base_delay * 2 ** (attempt - 1), max_delay)
            delay *= 1 + random.uniform(-jitter, jitter)  # nosec B311
            logger.info(
                "Ledger locked (attempt %d/%d), retrying in %.2fs",
                attempt,
                attempts,
                delay,
            )
            time.sleep(delay)
        else:
            if attempt > 1:
                logger.info("Ledger write succeeded on attempt %d", attempt)
            return result
    raise AssertionError("unreachable")


def check_database_connectivity(db_path: Path) -> bool:
    """Return True if the ledger file exists and its table can be read.

    Used by the daemon's health check; never creates the file.
    """
    if not db_path.exists():
        return False
    try:
        conn = sqlite3.connect(str(db_path), timeout=5.0)
        try:
            conn.execute(f"SELECT 1 FROM {TABLE_NAME} LIMIT 1")  # nosec B608
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("Ledger connectivity check failed for %s: %s", db_path, e)
        return False
    return True
