"""Worker context for structured logging.

A worker sets its id and the path of the job it holds; every record
logged inside that context carries both, whatever module emitted it.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_worker_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker_id", default=None
)
_job_path: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_path", default=None
)


def get_worker_context() -> tuple[str | None, str | None]:
    """Return (worker_id, job_path); either may be None."""
    return _worker_id.get(), _job_path.get()


@contextmanager
def worker_context(
    worker_id: str, job_path: Path | str | None = None
) -> Iterator[None]:
    """Tag log records emitted inside the block with a worker and job.

    The previous context is restored on exit, so contexts nest.

    Example:
        with worker_context("host-1234", "/media/a.mkv"):
            logger.info("Transcoding")  # [Whost-1234] ... Transcoding
    """
    worker_token = _worker_id.set(worker_id)
    path_token = _job_path.set(str(job_path) if job_path is not None else None)
    try:
        yield
    finally:
        _job_path.reset(path_token)
        _worker_id.reset(worker_token)


class WorkerContextFilter(logging.Filter):
    """Logging filter that injects worker context into log records.

    Adds worker_id and job_path attributes for JSON output, and a
    worker_tag like "[W01] " (empty outside a worker) for text output.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        worker_id, job_path = get_worker_context()
        record.worker_id = worker_id
        record.job_path = job_path
        record.worker_tag = f"[W{worker_id}] " if worker_id else ""
        return True
