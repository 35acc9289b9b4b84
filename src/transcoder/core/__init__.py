"""Core utilities package.

Pure helper functions with no dependencies on the rest of the package.
"""

from transcoder.core.datetime_utils import epoch_now, format_epoch, parse_duration
from transcoder.core.formatting import (
    format_file_size,
    truncate_message,
    truncate_path,
)

__all__ = [
    "epoch_now",
    "format_epoch",
    "format_file_size",
    "parse_duration",
    "truncate_message",
    "truncate_path",
]
