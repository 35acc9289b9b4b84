"""Job worker for processing the transcode ledger.

This module provides the worker loop:
- claim the oldest claimable job, probe it, transcode it, record the outcome
- heartbeat updates so a long transcode is not reclaimed as stale
- jittered polling when the queue is empty
- configurable limits (max files, max duration, end time)
- graceful shutdown on SIGTERM/SIGINT: the in-flight transcode is
  cancelled and the job is marked error rather than left processing
"""

import logging
import os
import random
import signal
import socket
import sqlite3
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path

from transcoder.core.formatting import truncate_message
from transcoder.db.connection import get_connection
from transcoder.db.types import TranscodeJob
from transcoder.executor.interface import Transcoder
from transcoder.introspector.interface import MetadataProber, ProbeError
from transcoder.jobs.exceptions import (
    ConflictError,
    InvalidTransitionError,
    LedgerError,
)
from transcoder.jobs.queue import (
    DEFAULT_LIVENESS_TIMEOUT,
    claim_next_job,
    mark_done,
    mark_error,
    update_heartbeat,
)
from transcoder.logging.context import worker_context

logger = logging.getLogger(__name__)

# Heartbeat interval (seconds)
DEFAULT_HEARTBEAT_INTERVAL = 60
MAX_HEARTBEAT_FAILURES = 3  # Abort job after this many consecutive heartbeat failures

# Stored error messages are capped at this many characters
MAX_ERROR_MESSAGE_LENGTH = 2000

# Attempts at recording an outcome when the write lock is contended
_RECORD_ATTEMPTS = 3

# Seconds between checks for a received SIGTERM/SIGINT
_SIGNAL_POLL_INTERVAL = 0.2


def default_worker_id() -> str:
    """Return "<hostname>-<pid>"."""
    return f"{socket.gethostname()}-{os.getpid()}"


def parse_end_by(end_by: str | None, now: datetime | None = None) -> datetime | None:
    """Parse an HH:MM end time into the next local datetime it refers to.

    A time that has already passed today means tomorrow.

    Raises:
        ValueError: If end_by is not HH:MM.
    """
    if end_by is None:
        return None
    try:
        hour, minute = map(int, end_by.split(":"))
        current = now or datetime.now()
        end_time = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    except ValueError as e:
        raise ValueError(f"Invalid end_by '{end_by}' (expected HH:MM)") from e
    if end_time <= current:
        end_time += timedelta(days=1)
    return end_time


class JobWorker:
    """Worker that drains the transcode ledger.

    Each worker owns one connection; the heartbeat thread opens a second
    one to the same database file. Workers in other threads or processes
    coordinate only through the ledger.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        prober: MetadataProber,
        transcoder: Transcoder,
        *,
        worker_id: str | None = None,
        liveness_timeout: int = DEFAULT_LIVENESS_TIMEOUT,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        poll_interval: float = 5.0,
        poll_jitter: float = 0.25,
        max_files: int | None = None,
        max_duration: int | None = None,
        end_by: str | None = None,
        exit_when_empty: bool = False,
        lock_timeout: float = 30.0,
        install_signal_handlers: bool = True,
    ) -> None:
        """Initialize the job worker.

        Args:
            conn: Database connection used for claims and outcomes.
            prober: Metadata prober run before each transcode.
            transcoder: Transcoder that does the actual work.
            worker_id: Identifier for logs (default "<hostname>-<pid>").
            liveness_timeout: Seconds after which a claim is stale.
            heartbeat_interval: Seconds between heartbeats; must be well
                below liveness_timeout.
            poll_interval: Base sleep when the queue is empty.
            poll_jitter: Random spread applied to poll_interval (0-1).
            max_files: Maximum files to process (None = unlimited).
            max_duration: Maximum duration in seconds (None = unlimited).
            end_by: End time in HH:MM format (None = no end time).
            exit_when_empty: Return instead of polling on an empty queue.
            lock_timeout: SQLite lock timeout for the heartbeat connection.
            install_signal_handlers: Handle SIGTERM/SIGINT while running.
                Only possible from the main thread.

        Raises:
            ValueError: If heartbeat_interval >= liveness_timeout or end_by
                is malformed.
        """
        if heartbeat_interval >= liveness_timeout:
            raise ValueError(
                f"heartbeat_interval ({heartbeat_interval}s) must be less than "
                f"liveness_timeout ({liveness_timeout}s)"
            )

        self.conn = conn
        self.prober = prober
        self.transcoder = transcoder
        self.worker_id = worker_id or default_worker_id()
        self.liveness_timeout = liveness_timeout
        self.heartbeat_interval = heartbeat_interval
        self.poll_interval = poll_interval
        self.poll_jitter = poll_jitter
        self.max_files = max_files
        self.max_duration = max_duration
        self.end_by = parse_end_by(end_by)
        self.exit_when_empty = exit_when_empty
        self.lock_timeout = lock_timeout
        self.install_signal_handlers = install_signal_handlers

        # Heartbeats need their own connection to the same file.
        # PRAGMA database_list returns (seq, name, file) tuples
        row = conn.execute("PRAGMA database_list").fetchone()
        self._db_path = Path(row[2]) if row and row[2] else None

        # State
        self._shutdown = threading.Event()
        # Set by the signal handler; _watch_signals turns it into a shutdown
        self._signal_received = False
        self._signal_watcher: threading.Thread | None = None
        self._watch_stop = threading.Event()
        self._files_processed = 0
        self._start_time: float | None = None

        # Claim state shared with the heartbeat thread
        self._claim_lock = threading.Lock()
        self._claim_token: int | None = None
        self._claim_lost = False
        # Cancel event of the job in flight
        self._cancel_event: threading.Event | None = None

        # Heartbeat thread
        self._heartbeat_thread: threading.Thread | None = None
        self._heartbeat_stop = threading.Event()

    @property
    def files_processed(self) -> int:
        return self._files_processed

    def request_shutdown(self) -> None:
        """Stop after the current job, cancelling any running transcode.

        Safe to call from any thread, but not from a signal handler.
        """
        self._shutdown.set()
        event = self._cancel_event
        if event is not None:
            event.set()

    def _signal_handler(self, signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, requesting shutdown...", sig_name)
        # Only a flag: the handler runs on the main thread, which may be
        # holding any lock
        self._signal_received = True

    def _watch_signals(self) -> None:
        while not self._watch_stop.wait(_SIGNAL_POLL_INTERVAL):
            if self._signal_received:
                self.request_shutdown()
                return

    def _should_continue(self) -> bool:
        """Check if worker should continue processing."""
        if self._shutdown.is_set() or self._signal_received:
            return False

        if self.max_files is not None and self._files_processed >= self.max_files:
            logger.info("Reached max files limit (%d)", self.max_files)
            return False

        if self.max_duration is not None and self._start_time is not None:
            elapsed = time.monotonic() - self._start_time
            if elapsed >= self.max_duration:
                logger.info(
                    "Reached max duration limit (%d seconds)", self.max_duration
                )
                return False

        if self.end_by is not None and datetime.now() >= self.end_by:
            logger.info("Reached end time (%s)", self.end_by.strftime("%H:%M"))
            return False

        return True

    def _poll_delay(self) -> float:
        spread = self.poll_interval * self.poll_jitter
        return max(0.0, self.poll_interval + random.uniform(-spread, spread))  # nosec B311

    def _start_heartbeat(
        self, job: TranscodeJob, cancel_event: threading.Event
    ) -> None:
        """Start the heartbeat thread for a claimed job.

        The thread keeps the claim token current. If the row stops being
        ours (reclaimed after a stall, or re-enqueued) the transcode is
        cancelled and the outcome is not recorded.
        """
        self._heartbeat_stop.clear()
        if self._db_path is None:
            logger.warning(
                "No database file to heartbeat against; long jobs may be "
                "reclaimed after %ds",
                self.liveness_timeout,
            )
            return

        def heartbeat_loop() -> None:
            failures = 0
            with worker_context(self.worker_id, job.path), get_connection(
                self._db_path, timeout=self.lock_timeout
            ) as heartbeat_conn:
                while not self._heartbeat_stop.wait(self.heartbeat_interval):
                    with self._claim_lock:
                        token = self._claim_token
                    if token is None:
                        return
                    try:
                        new_token = update_heartbeat(heartbeat_conn, job.path, token)
                    except InvalidTransitionError as e:
                        logger.error("Lost claim on %s: %s", job.path, e)
                        with self._claim_lock:
                            self._claim_lost = True
                        cancel_event.set()
                        return
                    except (LedgerError, sqlite3.Error) as e:
                        failures += 1
                        logger.error(
                            "Heartbeat failed (%d/%d): %s",
                            failures,
                            MAX_HEARTBEAT_FAILURES,
                            e,
                        )
                        if failures >= MAX_HEARTBEAT_FAILURES:
                            logger.critical(
                                "Max heartbeat failures reached, requesting shutdown"
                            )
                            self.request_shutdown()
                            return
                        continue
                    failures = 0
                    with self._claim_lock:
                        self._claim_token = new_token
                    logger.debug("Heartbeat for %s (token %d)", job.path, new_token)

        self._heartbeat_thread = threading.Thread(
            target=heartbeat_loop,
            daemon=True,
            name=f"heartbeat-{self.worker_id}",
        )
        self._heartbeat_thread.start()

    def _stop_heartbeat(self) -> None:
        """Stop the heartbeat thread and wait for any in-flight beat."""
        self._heartbeat_stop.set()
        if self._heartbeat_thread is not None:
            self._heartbeat_thread.join(timeout=self.lock_timeout + 5)
            if self._heartbeat_thread.is_alive():
                logger.warning(
                    "Heartbeat thread %s did not stop within timeout",
                    self._heartbeat_thread.name,
                )
            self._heartbeat_thread = None

    def _execute(
        self, job: TranscodeJob, cancel_event: threading.Event
    ) -> tuple[str | None, str | None]:
        """Probe and transcode one file.

        Returns:
            Tuple of (ffprobe_info, error_message); exactly one is set.
        """
        path = Path(job.path)
        try:
            probe = self.prober.probe(path)
        except ProbeError as e:
            return None, f"ffprobe failed: {e}"

        if cancel_event.is_set():
            return None, "worker shut down before transcoding started"

        result = self.transcoder.transcode(
            path, probe, file_size=job.file_size, cancel_event=cancel_event
        )
        if result.cancelled:
            return None, "transcode cancelled: worker shutting down"
        if not result.success:
            return None, result.error_message or "transcode failed"
        if result.skipped:
            logger.info("Nothing to do for %s", job.path)
        return probe.raw, None

    def _record(
        self, job: TranscodeJob, ffprobe_info: str | None, error: str | None
    ) -> None:
        """Write the outcome, retrying briefly on lock contention."""
        with self._claim_lock:
            token = self._claim_token
            lost = self._claim_lost
        if lost:
            logger.error(
                "Not recording outcome for %s: claim was lost while processing",
                job.path,
            )
            return

        for attempt in range(1, _RECORD_ATTEMPTS + 1):
            try:
                if error is None:
                    mark_done(self.conn, job.path, ffprobe_info, claimed_on=token)
                else:
                    mark_error(
                        self.conn,
                        job.path,
                        truncate_message(error, MAX_ERROR_MESSAGE_LENGTH),
                        claimed_on=token,
                    )
                return
            except InvalidTransitionError as e:
                # Another worker or the reaper owns the row now
                logger.error("Could not record outcome for %s: %s", job.path, e)
                return
            except ConflictError as e:
                if attempt == _RECORD_ATTEMPTS:
                    logger.error(
                        "Giving up recording outcome for %s; the reaper will "
                        "return it to pending: %s",
                        job.path,
                        e,
                    )
                    return
                delay = self._poll_delay()
                logger.warning(
                    "Ledger busy recording %s, retrying in %.1fs", job.path, delay
                )
                time.sleep(delay)

    def process_job(self, job: TranscodeJob) -> None:
        """Process a single claimed job and record its outcome."""
        with worker_context(self.worker_id, job.path):
            with self._claim_lock:
                self._claim_token = job.claim_token
                self._claim_lost = False
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            # A shutdown requested before the event was published
            if self._shutdown.is_set():
                cancel_event.set()
            self._start_heartbeat(job, cancel_event)
            start = time.monotonic()
            logger.info("Processing %s", job.path)
            try:
                ffprobe_info, error = self._execute(job, cancel_event)
            except Exception as e:
                logger.exception("Unexpected error processing %s", job.path)
                ffprobe_info, error = None, f"unexpected error: {e}"
            finally:
                self._stop_heartbeat()

            self._record(job, ffprobe_info, error)
            self._cancel_event = None
            with self._claim_lock:
                self._claim_token = None
            self._files_processed += 1
            if error is None:
                logger.info(
                    "Finished %s in %.1fs", job.path, time.monotonic() - start
                )
            else:
                logger.error("Failed %s: %s", job.path, error)

    def run(self) -> int:
        """Run the worker until a limit is reached or shutdown is requested.

        Returns:
            Number of jobs processed.
        """
        self._start_time = time.monotonic()
        self._files_processed = 0

        previous_handlers = {}
        if self.install_signal_handlers:
            for sig in (signal.SIGTERM, signal.SIGINT):
                previous_handlers[sig] = signal.signal(sig, self._signal_handler)
            self._signal_received = False
            self._watch_stop.clear()
            self._signal_watcher = threading.Thread(
                target=self._watch_signals,
                daemon=True,
                name=f"signals-{self.worker_id}",
            )
            self._signal_watcher.start()

        config_parts = [f"id={self.worker_id}"]
        if self.max_files is not None:
            config_parts.append(f"max_files={self.max_files}")
        if self.max_duration is not None:
            config_parts.append(f"max_duration={self.max_duration}s")
        if self.end_by is not None:
            config_parts.append(f"end_by={self.end_by.strftime('%H:%M')}")
        config_parts.append(f"liveness_timeout={self.liveness_timeout}s")
        logger.info("Starting job worker: %s", ", ".join(config_parts))

        try:
            while self._should_continue():
                try:
                    job = claim_next_job(
                        self.conn,
                        self.worker_id,
                        liveness_timeout=self.liveness_timeout,
                    )
                except ConflictError as e:
                    logger.warning("Ledger busy while claiming: %s", e)
                    self._shutdown.wait(self._poll_delay())
                    continue
                if job is None:
                    if self.exit_when_empty:
                        logger.info("Queue is empty")
                        break
                    delay = self._poll_delay()
                    logger.debug("Nothing to claim, sleeping %.1fs", delay)
                    self._shutdown.wait(delay)
                    continue
                self.process_job(job)
        finally:
            for sig, handler in previous_handlers.items():
                signal.signal(sig, handler)
            if self._signal_watcher is not None:
                self._watch_stop.set()
                self._signal_watcher.join()
                self._signal_watcher = None

        elapsed = time.monotonic() - self._start_time
        logger.info(
            "Worker finished: %d job(s) in %.1f seconds",
            self._files_processed,
            elapsed,
        )
        return self._files_processed
