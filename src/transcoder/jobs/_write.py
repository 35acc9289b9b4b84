"""Shared write helper for ledger operations."""

import logging
import sqlite3
from collections.abc import Callable
from typing import TypeVar

from transcoder.db.connection import execute_with_retry, is_lock_error
from transcoder.jobs.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_write(func: Callable[[], T], operation: str) -> T:
    """Run a transactional write with lock retry.

    Lock contention that outlasts the retry budget is surfaced as
    ConflictError; any other database error propagates unchanged.

    Args:
        func: Zero-argument callable that performs the whole transaction.
        operation: Short description used in log and error messages.
    """
    try:
        return execute_with_retry(func)
    except sqlite3.OperationalError as e:
        if is_lock_error(e):
            logger.error("Lock contention while trying to %s: %s", operation, e)
            raise ConflictError(f"Could not {operation}: {e}") from e
        raise
