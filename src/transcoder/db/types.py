"""Domain types for the transcode ledger."""

from dataclasses import dataclass
from enum import Enum


class JobStatus(Enum):
    """Status of a row in the transcode_files table.

    State transitions:
        pending    → processing  (claim)
        processing → done        (mark_done)
        processing → error       (mark_error)
        processing → pending     (stale-claim recovery, re-enqueue)
        done/error → pending     (re-enqueue only)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Return True for states a worker cannot leave on its own."""
        return self in (JobStatus.DONE, JobStatus.ERROR)

    def can_transition_to(self, target: "JobStatus") -> bool:
        """Check whether the lifecycle allows moving from this state to target.

        Re-enqueue (upsert) is not covered here: it resets any row to
        PENDING regardless of its current state.
        """
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.DONE, JobStatus.ERROR, JobStatus.PENDING}
    ),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


@dataclass(frozen=True)
class TranscodeJob:
    """Database record for the transcode_files table.

    Timestamps are integer epoch seconds. ``updated_on`` never
    decreases and doubles as the claim version token: a row only changes
    owner after going stale or being re-enqueued, and both move it forward.
    """

    path: str
    status: JobStatus
    created_on: int
    updated_on: int
    file_size: int
    error_message: str | None = None
    ffprobe_info: str | None = None

    @property
    def claim_token(self) -> int:
        """Version token to hand back to mark_done/mark_error/update_heartbeat."""
        return self.updated_on

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "path": self.path,
            "status": self.status.value,
            "created_on": self.created_on,
            "updated_on": self.updated_on,
            "file_size": self.file_size,
            "error_message": self.error_message,
            "ffprobe_info": self.ffprobe_info,
        }
