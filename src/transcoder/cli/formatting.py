"""Shared display helpers for CLI output."""

from transcoder.db.types import JobStatus

# Map JobStatus to terminal color names (for click.style)
JOB_STATUS_COLORS: dict[JobStatus, str] = {
    JobStatus.PENDING: "yellow",
    JobStatus.PROCESSING: "blue",
    JobStatus.DONE: "green",
    JobStatus.ERROR: "red",
}

# Default color when status is not found
DEFAULT_STATUS_COLOR = "white"


def get_status_color(status: JobStatus) -> str:
    """Get the terminal color for a job status."""
    return JOB_STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)
