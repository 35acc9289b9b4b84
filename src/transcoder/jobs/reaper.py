"""Stale-claim reaper.

Background task that periodically returns abandoned claims (workers that
crashed or were killed while processing) to pending, so other workers
can pick them up.

A failed scan never stops the reaper: the error is logged and the scan is
retried on the next tick.

Usage:
    reaper = StaleClaimReaper(db_path, liveness_timeout=3600, interval=60)
    asyncio.create_task(reaper.run())
    # ... later ...
    reaper.stop()
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from transcoder.core.datetime_utils import epoch_now
from transcoder.db.connection import get_connection
from transcoder.jobs.exceptions import LedgerError
from transcoder.jobs.queue import DEFAULT_LIVENESS_TIMEOUT, recover_stale_jobs

logger = logging.getLogger(__name__)

# Default interval between scans (seconds)
DEFAULT_REAPER_INTERVAL = 60


@dataclass(frozen=True)
class ReaperEvent:
    """Result of one reaper scan, published to listeners."""

    timestamp: int
    """Epoch seconds at which the scan ran."""

    reclaimed: tuple[str, ...] = ()
    """Paths returned to pending by this scan."""

    error: str | None = None
    """Error message if the scan failed."""

    @property
    def count(self) -> int:
        return len(self.reclaimed)


@dataclass
class ReaperStats:
    """Running totals for monitoring."""

    scans: int = 0
    failed_scans: int = 0
    total_reclaimed: int = 0
    last_scan: int | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "scans": self.scans,
            "failed_scans": self.failed_scans,
            "total_reclaimed": self.total_reclaimed,
            "last_scan": self.last_scan,
            "last_error": self.last_error,
        }


ReaperListener = Callable[[ReaperEvent], None]


@dataclass
class StaleClaimReaper:
    """Periodically recover stale processing claims.

    Each scan opens its own connection, so the reaper can run in a
    worker thread (via asyncio.to_thread) alongside anything else that
    uses the database.
    """

    db_path: Path
    liveness_timeout: int = DEFAULT_LIVENESS_TIMEOUT
    interval: float = DEFAULT_REAPER_INTERVAL
    lock_timeout: float = 30.0
    clock: Callable[[], int] = epoch_now
    stats: ReaperStats = field(default_factory=ReaperStats)
    _listeners: list[ReaperListener] = field(default_factory=list, repr=False)
    _stop_event: asyncio.Event | None = field(default=None, init=False, repr=False)
    _running: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.liveness_timeout <= 0:
            raise ValueError("liveness_timeout must be positive")
        if self.interval <= 0:
            raise ValueError("interval must be positive")

    def add_listener(self, listener: ReaperListener) -> None:
        """Register a callback invoked after every scan."""
        self._listeners.append(listener)

    def run_once(self) -> ReaperEvent:
        """Run a single scan synchronously.

        Never raises for database or ledger errors; they are logged and
        reported in the returned event.

        Returns:
            ReaperEvent describing the scan.
        """
        now = self.clock()
        try:
            with get_connection(self.db_path, timeout=self.lock_timeout) as conn:
                paths = recover_stale_jobs(
                    conn, liveness_timeout=self.liveness_timeout, now=now
                )
        except (sqlite3.Error, LedgerError, OSError) as e:
            logger.error("Stale claim scan failed, will retry next tick: %s", e)
            event = ReaperEvent(timestamp=now, error=str(e))
            self.stats.failed_scans += 1
            self.stats.last_error = str(e)
        else:
            event = ReaperEvent(timestamp=now, reclaimed=tuple(paths))
            self.stats.total_reclaimed += event.count
            self.stats.last_error = None
            if event.count:
                logger.warning("Reaper returned %d stale job(s) to pending", event.count)
            else:
                logger.debug("Reaper found no stale jobs")

        self.stats.scans += 1
        self.stats.last_scan = now
        self._publish(event)
        return event

    def _publish(self, event: ReaperEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Reaper listener %r failed", listener)

    async def run(self) -> None:
        """Run the reaper loop until stop() is called.

        The first scan happens immediately; subsequent scans every
        ``interval`` seconds. Scans run in a worker thread so the event
        loop is never blocked on the database lock.
        """
        if self._running:
            logger.warning("Reaper already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        logger.info(
            "Reaper started (interval %.0fs, liveness timeout %ds)",
            self.interval,
            self.liveness_timeout,
        )

        try:
            while not self._stop_event.is_set():
                await asyncio.to_thread(self.run_once)
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.interval
                    )
                    # Stop event was set
                    break
                except asyncio.TimeoutError:
                    pass  # Normal case - interval elapsed
        finally:
            self._running = False
            logger.info("Reaper stopped")

    def stop(self) -> None:
        """Signal the reaper loop to stop after the current scan."""
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running
