"""HTTP application for daemon mode.

The daemon serves a health endpoint and read-only views of the ledger,
and runs the stale-claim reaper as a background task for as long as the
application is up.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from aiohttp import web

from transcoder import __version__
from transcoder.db.connection import check_database_connectivity, get_connection
from transcoder.db.types import JobStatus
from transcoder.jobs.ledger import get_queue_stats, list_jobs
from transcoder.jobs.reaper import StaleClaimReaper

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5.0  # seconds
DEFAULT_JOB_LIMIT = 100
MAX_JOB_LIMIT = 1000


@dataclass
class HealthStatus:
    """Health check response payload."""

    status: str
    """Overall status: 'healthy' or 'degraded'."""

    database: str
    """Database connectivity: 'connected' or 'disconnected'."""

    uptime_seconds: float
    """Seconds since daemon startup."""

    version: str

    reaper_running: bool = False
    """True while the stale-claim reaper task is alive."""

    jobs_pending: int = 0
    jobs_processing: int = 0
    jobs_error: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


async def check_database_health(db_path: Path) -> bool:
    """Check database connectivity without blocking the event loop.

    Times out after HEALTH_CHECK_TIMEOUT seconds.
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(check_database_connectivity, db_path),
            timeout=HEALTH_CHECK_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "Database health check timed out after %.1fs", HEALTH_CHECK_TIMEOUT
        )
        return False


def _read_stats(db_path: Path) -> dict[str, int]:
    with get_connection(db_path) as conn:
        return get_queue_stats(conn)


def _read_jobs(db_path: Path, status: JobStatus | None, limit: int) -> list[dict]:
    with get_connection(db_path) as conn:
        jobs = list_jobs(conn, status)
        return [job.to_dict() for job in itertools.islice(jobs, limit)]


def create_app(
    db_path: Path,
    *,
    liveness_timeout: int,
    reaper_interval: float,
    lock_timeout: float = 30.0,
    start_reaper: bool = True,
) -> web.Application:
    """Create and configure the aiohttp Application.

    Args:
        db_path: Path to the ledger database.
        liveness_timeout: Seconds after which a processing claim is stale.
        reaper_interval: Seconds between reaper scans.
        lock_timeout: SQLite lock timeout for reaper scans.
        start_reaper: Run the reaper as a background task.

    Returns:
        Configured aiohttp Application.
    """
    app = web.Application()
    app["db_path"] = db_path
    app["started_at"] = time.monotonic()
    app["reaper"] = StaleClaimReaper(
        db_path=db_path,
        liveness_timeout=liveness_timeout,
        interval=reaper_interval,
        lock_timeout=lock_timeout,
    )
    app["reaper_task"] = None

    app.router.add_get("/health", health_handler)
    app.router.add_get("/api/jobs", api_jobs_handler)
    app.router.add_get("/api/jobs/stats", api_stats_handler)

    if start_reaper:
        app.on_startup.append(_start_reaper)
        app.on_cleanup.append(_stop_reaper)

    return app


async def _start_reaper(app: web.Application) -> None:
    """Start the stale-claim reaper task."""
    reaper: StaleClaimReaper = app["reaper"]
    app["reaper_task"] = asyncio.create_task(reaper.run())
    logger.debug("Started stale-claim reaper task")


async def _stop_reaper(app: web.Application) -> None:
    """Stop the stale-claim reaper task."""
    reaper: StaleClaimReaper = app["reaper"]
    task_handle: asyncio.Task | None = app.get("reaper_task")

    reaper.stop()
    if task_handle and task_handle.done():
        # A reaper that died early; retrieve its exception so it is reported
        if not task_handle.cancelled() and task_handle.exception() is not None:
            logger.error(
                "Stale-claim reaper task had failed",
                exc_info=task_handle.exception(),
            )
    elif task_handle:
        try:
            await asyncio.wait_for(task_handle, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Reaper task did not stop in time, cancelling")
            task_handle.cancel()
            try:
                await task_handle
            except asyncio.CancelledError:
                pass
        except Exception:
            logger.exception("Stale-claim reaper task failed while stopping")

    logger.debug("Stopped stale-claim reaper task")


async def health_handler(request: web.Request) -> web.Response:
    """Handle GET /health requests.

    Returns 200 when the database is reachable, 503 otherwise.
    """
    db_path: Path = request.app["db_path"]
    reaper: StaleClaimReaper = request.app["reaper"]

    db_connected = await check_database_health(db_path)

    stats = {"pending": 0, "processing": 0, "error": 0}
    if db_connected:
        try:
            stats = await asyncio.to_thread(_read_stats, db_path)
        except sqlite3.Error as e:
            logger.warning("Failed to get queue stats for health check: %s", e)

    status = "healthy" if db_connected else "degraded"
    health = HealthStatus(
        status=status,
        database="connected" if db_connected else "disconnected",
        uptime_seconds=round(time.monotonic() - request.app["started_at"], 1),
        version=__version__,
        reaper_running=reaper.is_running,
        jobs_pending=stats["pending"],
        jobs_processing=stats["processing"],
        jobs_error=stats["error"],
    )
    return web.json_response(
        health.to_dict(), status=200 if status == "healthy" else 503
    )


async def api_jobs_handler(request: web.Request) -> web.Response:
    """Handle GET /api/jobs?status=<status>&limit=<n>.

    Returns jobs in insertion order.
    """
    status_param = request.query.get("status")
    status: JobStatus | None = None
    if status_param:
        try:
            status = JobStatus(status_param)
        except ValueError:
            valid = ", ".join(s.value for s in JobStatus)
            return web.json_response(
                {"error": f"Invalid status '{status_param}'. Valid: {valid}"},
                status=400,
            )

    try:
        limit = int(request.query.get("limit", DEFAULT_JOB_LIMIT))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)
    if not 1 <= limit <= MAX_JOB_LIMIT:
        return web.json_response(
            {"error": f"limit must be 1-{MAX_JOB_LIMIT}"}, status=400
        )

    jobs = await asyncio.to_thread(_read_jobs, request.app["db_path"], status, limit)
    return web.json_response({"jobs": jobs, "count": len(jobs)})


async def api_stats_handler(request: web.Request) -> web.Response:
    """Handle GET /api/jobs/stats: queue counts plus reaper totals."""
    reaper: StaleClaimReaper = request.app["reaper"]
    stats = await asyncio.to_thread(_read_stats, request.app["db_path"])
    return web.json_response({"queue": stats, "reaper": reaper.stats.to_dict()})
