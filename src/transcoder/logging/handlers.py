"""JSON log output, one object per line."""

import json
import logging
from datetime import datetime, timezone

# Fields WorkerContextFilter attaches; emitted under "context" only when set
_WORKER_FIELDS = ("worker_id", "job_path")

# Everything a bare LogRecord carries, so only extra= values remain
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "worker_tag", *_WORKER_FIELDS}


def _context_fields(record: logging.LogRecord) -> dict:
    context = {
        name: getattr(record, name)
        for name in _WORKER_FIELDS
        if getattr(record, name, None)
    }
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRS and not key.startswith("_"):
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """Render records as JSON for log shippers.

    Keys: timestamp (UTC, millisecond precision), level, logger, message,
    plus ``context`` (worker fields and ``extra=`` values) and
    ``exception`` when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _context_fields(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)
