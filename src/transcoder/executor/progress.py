"""FFmpeg progress parsing utilities.

Parses the key=value lines ffmpeg writes with ``-progress -``.
"""

from dataclasses import dataclass

# Keys that require integer conversion (return None on parse failure)
_INT_KEYS = frozenset(("frame", "total_size", "out_time_us"))

_VALID_KEYS = frozenset(("frame", "fps", "total_size", "out_time_us", "speed"))


@dataclass
class FFmpegProgress:
    """Parsed FFmpeg progress output."""

    frame: int | None = None
    fps: float | None = None
    total_size: int | None = None
    out_time_us: int | None = None  # Output time in microseconds
    speed: str | None = None

    def get_percent(self, total_frames: int | None) -> float:
        """Calculate progress percentage from the frame count.

        Returns 0.0 if either value is unknown.
        """
        if not total_frames or total_frames <= 0 or self.frame is None:
            return 0.0
        return min(100.0, (self.frame / total_frames) * 100)


def parse_progress_line(line: str) -> dict[str, str | int | float | None]:
    """Parse a single line from FFmpeg -progress output.

    Args:
        line: A line such as "frame=120".

    Returns:
        Dictionary with the parsed key-value pair, or empty dict if the
        line is not a recognized progress line.
    """
    line = line.strip()
    if "=" not in line:
        return {}

    key, _, value = line.partition("=")
    key = key.strip()
    value = value.strip()

    if key not in _VALID_KEYS:
        return {}

    if key in _INT_KEYS:
        try:
            return {key: int(value)}
        except ValueError:
            return {}
    if key == "fps":
        try:
            return {key: float(value)}
        except ValueError:
            return {}
    return {key: value if value != "N/A" else None}


def is_progress_line(line: str) -> bool:
    """Return True for any line of the -progress key=value protocol."""
    key, sep, _ = line.strip().partition("=")
    return bool(sep) and key.replace("_", "").isalnum() and " " not in key
