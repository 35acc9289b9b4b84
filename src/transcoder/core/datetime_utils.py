"""Epoch timestamp helpers.

The ledger stores integer epoch seconds, so every timestamp the core
writes comes from epoch_now().
"""

import re
import time
from datetime import datetime, timezone

_DURATION_UNITS: dict[str, int] = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def epoch_now() -> int:
    """Return the current time as integer epoch seconds."""
    return int(time.time())


def format_epoch(timestamp: int | None) -> str:
    """Format epoch seconds as a UTC 'YYYY-MM-DD HH:MM:SS' string.

    Returns "-" for None.
    """
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S"
    )


def parse_duration(value: str) -> int:
    """Parse a duration like "90", "30s", "15m", "2h" or "1d" into seconds.

    Raises:
        ValueError: If the format is invalid.

    Examples:
        >>> parse_duration("15m")
        900
        >>> parse_duration("45")
        45
    """
    match = re.match(r"^(\d+)([smhdSMHD]?)$", value.strip())
    if not match:
        raise ValueError(
            f"Invalid duration '{value}'. Expected <number>[s|m|h|d], "
            "e.g. '30s', '15m', '2h'"
        )
    amount = int(match.group(1))
    unit = match.group(2).lower() or "s"
    return amount * _DURATION_UNITS[unit]
