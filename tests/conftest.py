"""Shared test fixtures for the transcoder."""

import logging
import sqlite3
from pathlib import Path

import pytest

from transcoder.db.connection import open_connection


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Return a path for a fresh ledger database."""
    return tmp_path / "ledger.sqlite3"


@pytest.fixture
def db_conn(db_path: Path):
    """Open a ledger connection on a file-backed database."""
    conn = open_connection(db_path, timeout=5.0)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo configure_logging() calls made by CLI tests."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _set_row(conn: sqlite3.Connection, path: str, **columns) -> None:
    assignments = ", ".join(f"{name} = ?" for name in columns)
    conn.execute(
        f"UPDATE transcode_files SET {assignments} WHERE path = ?",
        (*columns.values(), path),
    )
    conn.commit()


@pytest.fixture
def set_row():
    """Return a helper that overwrites columns of a ledger row directly.

    The helper commits immediately so later BEGIN IMMEDIATE calls do not
    fail on an open implicit transaction.
    """
    return _set_row
