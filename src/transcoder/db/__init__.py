"""Database layer for the transcode ledger.

- schema: the transcode_files table definition
- connection: connection setup, transactions and lock retry
- types: JobStatus and TranscodeJob
- queries: row-level SQL used by transcoder.jobs
"""

from transcoder.db.connection import (
    check_database_connectivity,
    execute_with_retry,
    get_connection,
    get_default_db_path,
    immediate_transaction,
    open_connection,
)
from transcoder.db.schema import SCHEMA_SQL, TABLE_NAME, create_schema
from transcoder.db.types import JobStatus, TranscodeJob

__all__ = [
    "SCHEMA_SQL",
    "TABLE_NAME",
    "JobStatus",
    "TranscodeJob",
    "check_database_connectivity",
    "create_schema",
    "execute_with_retry",
    "get_connection",
    "get_default_db_path",
    "immediate_transaction",
    "open_connection",
]
