"""Database schema definition for the transcode ledger.

The transcode_files table layout is shared with other tools that read the
ledger, so its columns must not change. Only auxiliary indexes are added.
"""

import sqlite3

TABLE_NAME = "transcode_files"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transcode_files (
    "path" VARCHAR NOT NULL UNIQUE,
    "status" VARCHAR NOT NULL DEFAULT 'pending',
    created_on BIGINT NOT NULL,
    updated_on BIGINT NOT NULL,
    error_message VARCHAR,
    file_size BIGINT NOT NULL,
    ffprobe_info VARCHAR
);

-- Claim scans filter by status and order by created_on
CREATE INDEX IF NOT EXISTS idx_transcode_files_status_created
    ON transcode_files(status, created_on);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create the ledger table and indexes if they don't exist.

    Args:
        conn: An open database connection.
    """
    conn.executescript(SCHEMA_SQL)
    # executescript() commits any pending transaction; commit again so the
    # connection is never left inside an implicit transaction, which would
    # make the BEGIN IMMEDIATE in claim_next_job fail.
    conn.commit()
