"""CLI serve command for daemon mode.

Runs the HTTP health/ledger endpoints and the stale-claim reaper in one
long-lived process suitable for systemd.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import sqlite3
from pathlib import Path

import click

from transcoder.config import TranscoderConfig
from transcoder.db.connection import get_connection, get_default_db_path

logger = logging.getLogger(__name__)


async def run_server(
    bind: str,
    port: int,
    shutdown_timeout: float,
    db_path: Path,
    config: TranscoderConfig,
) -> int:
    """Run the daemon until SIGTERM or SIGINT.

    Returns:
        Exit code (0 for clean shutdown, 1 if the server could not start).
    """
    from aiohttp import web

    from transcoder.server.app import create_app

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_shutdown_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown_signal, sig)
        except (ValueError, RuntimeError, NotImplementedError) as e:
            logger.warning("Failed to register handler for %s: %s", sig.name, e)

    app = create_app(
        db_path,
        liveness_timeout=config.ledger.liveness_timeout,
        reaper_interval=config.reaper.interval,
        lock_timeout=config.ledger.lock_timeout,
    )
    runner = web.AppRunner(app, shutdown_timeout=shutdown_timeout)
    await runner.setup()

    try:
        site = web.TCPSite(runner, bind, port)
        await site.start()

        logger.info(
            "Transcoder daemon started on http://%s:%d (PID %d)",
            bind,
            port,
            os.getpid(),
        )
        logger.info("Health endpoint: http://%s:%d/health", bind, port)

        await shutdown_event.wait()
        logger.info("Shutdown initiated")

    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            logger.error("Port %d is already in use", port)
        elif e.errno == errno.EADDRNOTAVAIL:
            logger.error("Cannot bind to address %s", bind)
        else:
            logger.error("Server error: %s", e)
        return 1
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await runner.cleanup()
        logger.info("Transcoder daemon stopped")

    return 0


@click.command("serve")
@click.option(
    "--bind",
    type=str,
    default=None,
    help="Address to bind to (default: 127.0.0.1).",
)
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65535),
    default=None,
    help="Port to bind to (default: 8322).",
)
@click.pass_context
def serve_command(ctx: click.Context, bind: str | None, port: int | None) -> None:
    """Run the reaper and HTTP status endpoints as a daemon.

    The reaper returns jobs whose worker stopped heartbeating to pending.
    Endpoints: /health, /api/jobs, /api/jobs/stats.

    \b
    Examples:
        transcoder serve
        transcoder serve --bind 0.0.0.0 --port 9000
    """
    config: TranscoderConfig = ctx.find_root().obj["config"]
    server_bind = bind if bind is not None else config.server.bind
    server_port = port if port is not None else config.server.port
    db_path = config.ledger.database_path or get_default_db_path()

    # Create the ledger up front so /health reports it as connected
    try:
        with get_connection(db_path, timeout=config.ledger.lock_timeout):
            pass
    except (sqlite3.Error, OSError) as e:
        raise click.ClickException(f"Database not accessible: {db_path}: {e}") from e

    if server_port < 1024:
        logger.warning("Port %d is privileged and may require root", server_port)

    logger.info(
        "Starting transcoder daemon (bind=%s, port=%d, reaper every %.0fs, "
        "liveness timeout %ds)",
        server_bind,
        server_port,
        config.reaper.interval,
        config.ledger.liveness_timeout,
    )

    exit_code = asyncio.run(
        run_server(
            server_bind,
            server_port,
            config.server.shutdown_timeout,
            db_path,
            config,
        )
    )
    ctx.exit(exit_code)
