"""Exceptions raised by ledger operations.

An empty queue is not an error: claim_next_job returns None. A job that
failed to transcode is not an error either; it is recorded as
status=error in the ledger.
"""

from transcoder.db.types import JobStatus


class LedgerError(Exception):
    """Base exception for ledger errors.

    All ledger exceptions inherit from this class, allowing callers
    to catch them with a single except clause if desired.
    """


class JobNotFoundError(LedgerError, LookupError):
    """Raised when a path has no row in the ledger.

    Attributes:
        path: The path that was looked up.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No transcode job for {path}")


class InvalidTransitionError(LedgerError):
    """Raised when a transition is not valid from the row's current state.

    Usually means the caller lost a claim race, or two workers both
    believe they own the same job. Never retried automatically.

    Attributes:
        path: The job path.
        current: Status the row had when the transition was attempted,
            or None if the row does not exist.
        target: Status the caller tried to move the row to.
    """

    def __init__(
        self,
        path: str,
        current: JobStatus | None,
        target: JobStatus,
        message: str | None = None,
    ) -> None:
        self.path = path
        self.current = current
        self.target = target
        if message is None:
            current_desc = current.value if current is not None else "missing"
            message = (
                f"Cannot move job {path} from {current_desc} to {target.value}"
            )
        super().__init__(message)


class ClaimLostError(InvalidTransitionError):
    """Raised when a claim's version token no longer matches the row.

    The row is still processing, but it was reclaimed (by the reaper and
    then another worker) after the caller's claim went stale.

    Attributes:
        claimed_on: The token the caller presented.
        updated_on: The row's current token.
    """

    def __init__(
        self, path: str, target: JobStatus, claimed_on: int, updated_on: int
    ) -> None:
        self.claimed_on = claimed_on
        self.updated_on = updated_on
        super().__init__(
            path,
            JobStatus.PROCESSING,
            target,
            f"Claim on job {path} was lost (token {claimed_on}, "
            f"row is at {updated_on})",
        )


class ConflictError(LedgerError):
    """Raised when a write could not be applied due to concurrent access.

    This covers SQLite lock contention that outlasted the retry budget.
    Callers should back off and retry the whole claim/transition cycle.
    """
