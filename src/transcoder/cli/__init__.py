"""CLI module for the transcoder."""

import logging
import sqlite3
from pathlib import Path

import click

from transcoder.config import (
    ConfigError,
    TranscoderConfig,
    build_logging_config,
    get_config,
)
from transcoder.db.connection import get_default_db_path, open_connection
from transcoder.logging import configure_logging

logger = logging.getLogger(__name__)


def _load_config(config_path: Path | None, db_path: Path | None) -> TranscoderConfig:
    try:
        return get_config(config_path=config_path, database_path=db_path, strict=True)
    except (ConfigError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def _configure_logging(
    config: TranscoderConfig,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Configure logging from CLI options over the configured defaults."""
    try:
        logging_config = build_logging_config(
            config.logging,
            level=log_level,
            file=log_file,
            format="json" if log_json else None,
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(logging_config)


def get_db_conn(ctx: click.Context) -> sqlite3.Connection:
    """Return the command's ledger connection, opening it on first use.

    The connection is closed when the root context closes.
    """
    root = ctx.find_root()
    conn = root.obj.get("db_conn")
    if conn is not None:
        return conn

    config: TranscoderConfig = root.obj["config"]
    db_path = config.ledger.database_path or get_default_db_path()
    try:
        conn = open_connection(db_path, timeout=config.ledger.lock_timeout)
    except (sqlite3.Error, OSError) as e:
        raise click.ClickException(f"Failed to open database {db_path}: {e}") from e
    root.obj["db_conn"] = conn
    root.call_on_close(conn.close)
    logger.debug("Opened ledger %s", db_path)
    return conn


@click.group()
@click.version_option(package_name="transcoder")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to config file (default: ~/.transcoder/config.toml).",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the ledger database.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    db_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Transcode a video library to AV1, tracked in a SQLite ledger."""
    ctx.ensure_object(dict)

    # Tests may pass a prepared config and connection
    if "config" not in ctx.obj:
        ctx.obj["config"] = _load_config(config_path, db_path)

    _configure_logging(ctx.obj["config"], log_level, log_file, log_json)


# Defer import to avoid circular dependency
def _register_commands():
    from transcoder.cli.enqueue import add_command, scan_command
    from transcoder.cli.jobs import jobs_group
    from transcoder.cli.serve import serve_command
    from transcoder.cli.worker import worker_command

    main.add_command(add_command)
    main.add_command(scan_command)
    main.add_command(jobs_group)
    main.add_command(worker_command)
    main.add_command(serve_command)


_register_commands()
