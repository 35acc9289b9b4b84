"""Transcode job ledger operations.

- ledger: enqueue, lookup and listing
- queue: claim protocol and lifecycle transitions
- reaper: background recovery of stale claims
- worker: the claim/probe/transcode/record loop
"""

from transcoder.jobs.exceptions import (
    ClaimLostError,
    ConflictError,
    InvalidTransitionError,
    JobNotFoundError,
    LedgerError,
)
from transcoder.jobs.ledger import (
    enqueue_job,
    find_job,
    get_job,
    get_queue_stats,
    list_jobs,
    requeue_job,
    upsert_job,
)
from transcoder.jobs.queue import (
    DEFAULT_LIVENESS_TIMEOUT,
    claim_next_job,
    mark_done,
    mark_error,
    recover_stale_jobs,
    update_heartbeat,
)
from transcoder.jobs.reaper import ReaperEvent, ReaperStats, StaleClaimReaper

__all__ = [
    "DEFAULT_LIVENESS_TIMEOUT",
    "ClaimLostError",
    "ConflictError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "LedgerError",
    "ReaperEvent",
    "ReaperStats",
    "StaleClaimReaper",
    "claim_next_job",
    "enqueue_job",
    "find_job",
    "get_job",
    "get_queue_stats",
    "list_jobs",
    "mark_done",
    "mark_error",
    "recover_stale_jobs",
    "requeue_job",
    "update_heartbeat",
    "upsert_job",
]
