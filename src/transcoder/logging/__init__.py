"""Structured logging with JSON output, file rotation and worker context."""

from transcoder.logging.config import configure_logging
from transcoder.logging.context import (
    WorkerContextFilter,
    get_worker_context,
    worker_context,
)
from transcoder.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "WorkerContextFilter",
    "configure_logging",
    "get_worker_context",
    "worker_context",
]
