"""CLI commands for inspecting and managing the transcode ledger."""

import itertools
import json
import logging

import click

from transcoder.cli import get_db_conn
from transcoder.cli.formatting import get_status_color
from transcoder.config import TranscoderConfig
from transcoder.core import format_epoch, format_file_size, parse_duration, truncate_path
from transcoder.db.types import JobStatus, TranscodeJob
from transcoder.jobs.exceptions import ConflictError, JobNotFoundError
from transcoder.jobs.ledger import get_job, get_queue_stats, list_jobs, requeue_job
from transcoder.jobs.queue import recover_stale_jobs

logger = logging.getLogger(__name__)

_SORT_ORDERS = {"insertion": "insertion", "updated": "updated_on"}


def _format_job_row(job: TranscodeJob) -> tuple[str, str, str, str, str]:
    """Format a job for table display.

    Returns:
        Tuple of (status_value, status_color, path, size, updated).
        Color is returned separately so column widths ignore ANSI codes.
    """
    return (
        job.status.value,
        get_status_color(job.status),
        truncate_path(job.path, 60),
        format_file_size(job.file_size),
        format_epoch(job.updated_on),
    )


@click.group("jobs")
def jobs_group() -> None:
    """Inspect and manage the transcode ledger.

    Examples:

        # List all jobs
        transcoder jobs list

        # List only failed jobs
        transcoder jobs list --status error

        # Retry a failed job
        transcoder jobs retry /media/movies/film.mkv
    """
    pass


@jobs_group.command("list")
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in JobStatus] + ["all"]),
    default="all",
    help="Filter by job status.",
)
@click.option(
    "--sort",
    type=click.Choice(list(_SORT_ORDERS)),
    default="insertion",
    help="Order by insertion or by last update.",
)
@click.option(
    "--limit",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of jobs to show.",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format.",
)
@click.pass_context
def list_jobs_cmd(
    ctx: click.Context,
    status: str,
    sort: str,
    limit: int | None,
    json_output: bool,
) -> None:
    """List jobs in the ledger."""
    conn = get_db_conn(ctx)
    status_filter = None if status == "all" else JobStatus(status)
    jobs = list(
        itertools.islice(
            list_jobs(conn, status_filter, order_by=_SORT_ORDERS[sort]), limit
        )
    )

    if json_output:
        click.echo(json.dumps([job.to_dict() for job in jobs], indent=2))
        return

    if not jobs:
        click.echo("No jobs found.")
        return

    click.echo(f"{'STATUS':<12} {'PATH':<60} {'SIZE':>10} {'UPDATED':<20}")
    click.echo("-" * 105)
    for job in jobs:
        row = _format_job_row(job)
        # Pad first, then color, so ANSI codes do not shift the columns
        status_colored = click.style(f"{row[0]:<12}", fg=row[1])
        click.echo(f"{status_colored} {row[2]:<60} {row[3]:>10} {row[4]:<20}")


def _output_job_human(job: TranscodeJob) -> None:
    """Output detailed job info in human-readable format."""
    status_colored = click.style(
        job.status.value.upper(), fg=get_status_color(job.status)
    )

    click.echo(f"\nJob: {job.path}")
    click.echo("-" * 50)
    click.echo(f"  Status:      {status_colored}")
    click.echo(f"  Size:        {format_file_size(job.file_size)}")
    click.echo(f"  Created:     {format_epoch(job.created_on)}")
    # Terminal rows are not touched again until re-enqueued
    updated_label = "Finished:" if job.status.is_terminal else "Updated: "
    click.echo(f"  {updated_label}    {format_epoch(job.updated_on)}")

    if job.error_message:
        click.echo("")
        click.echo(f"  Error:       {click.style(job.error_message, fg='red')}")

    if job.ffprobe_info:
        try:
            info = json.loads(job.ffprobe_info)
        except json.JSONDecodeError:
            info = None
        if isinstance(info, dict):
            streams = info.get("streams", [])
            click.echo("")
            click.echo(f"  Probe:       {len(streams)} stream(s)")
            for stream in streams:
                click.echo(
                    f"    {stream.get('codec_type', '?')}: "
                    f"{stream.get('codec_name', '?')}"
                )

    click.echo("")


@jobs_group.command("show")
@click.argument("path")
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format.",
)
@click.pass_context
def show_job(ctx: click.Context, path: str, json_output: bool) -> None:
    """Show detailed information about the job for PATH."""
    conn = get_db_conn(ctx)
    try:
        job = get_job(conn, path)
    except JobNotFoundError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        click.echo(json.dumps(job.to_dict(), indent=2))
    else:
        _output_job_human(job)


@jobs_group.command("status")
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format.",
)
@click.pass_context
def show_status(ctx: click.Context, json_output: bool) -> None:
    """Show ledger statistics."""
    stats = get_queue_stats(get_db_conn(ctx))

    if json_output:
        click.echo(json.dumps(stats, indent=2))
        return

    click.echo("Transcode Ledger Status")
    click.echo("-" * 30)
    click.echo(f"  Pending:    {stats['pending']:>5}")
    click.echo(f"  Processing: {stats['processing']:>5}")
    click.echo(f"  Done:       {stats['done']:>5}")
    click.echo(f"  Error:      {stats['error']:>5}")
    click.echo("-" * 30)
    click.echo(f"  Total:      {stats['total']:>5}")


@jobs_group.command("retry")
@click.argument("paths", nargs=-1)
@click.option(
    "--all-errors",
    is_flag=True,
    help="Requeue every job in error.",
)
@click.pass_context
def retry_jobs(ctx: click.Context, paths: tuple[str, ...], all_errors: bool) -> None:
    """Return jobs to pending so a worker picks them up again.

    Examples:

        transcoder jobs retry /media/tv/episode.mkv

        transcoder jobs retry --all-errors
    """
    if not paths and not all_errors:
        raise click.UsageError("Give one or more PATHS, or --all-errors.")

    conn = get_db_conn(ctx)
    targets = list(paths)
    if all_errors:
        # Materialize before writing; list_jobs reads from a live cursor
        targets.extend(job.path for job in list_jobs(conn, JobStatus.ERROR))

    failed = 0
    for path in targets:
        try:
            job = requeue_job(conn, path)
        except JobNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            failed += 1
            continue
        except ConflictError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Requeued {job.path}")

    click.echo(f"Requeued {len(targets) - failed} job(s).")
    if failed:
        ctx.exit(1)


@jobs_group.command("recover")
@click.option(
    "--timeout",
    "timeout",
    default=None,
    help="Liveness timeout (e.g. 90s, 30m, 1h). Default: configured value.",
)
@click.pass_context
def recover_jobs(ctx: click.Context, timeout: str | None) -> None:
    """Return stale processing claims to pending.

    Runs one reaper pass: every job that has been processing without a
    heartbeat for longer than the liveness timeout becomes pending again.
    """
    config: TranscoderConfig = ctx.find_root().obj["config"]
    if timeout is None:
        liveness_timeout = config.ledger.liveness_timeout
    else:
        try:
            liveness_timeout = parse_duration(timeout)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--timeout") from e
        if liveness_timeout <= 0:
            raise click.BadParameter("must be positive", param_hint="--timeout")

    try:
        paths = recover_stale_jobs(
            get_db_conn(ctx), liveness_timeout=liveness_timeout
        )
    except ConflictError as e:
        raise click.ClickException(str(e)) from e

    for path in paths:
        click.echo(f"Recovered {path}")
    click.echo(f"Recovered {len(paths)} stale job(s).")
