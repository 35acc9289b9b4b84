"""CLI command that runs a job worker."""

import logging

import click

from transcoder.cli import get_db_conn
from transcoder.config import TranscoderConfig
from transcoder.executor import FFmpegTranscoder
from transcoder.introspector import FFprobeProber, ProbeError
from transcoder.jobs.worker import JobWorker

logger = logging.getLogger(__name__)


@click.command("worker")
@click.option(
    "--worker-id",
    default=None,
    help="Identifier used in logs (default: <hostname>-<pid>).",
)
@click.option(
    "--max-files",
    "-n",
    type=click.IntRange(min=1),
    help="Maximum number of files to process.",
)
@click.option(
    "--max-duration",
    "-d",
    type=click.IntRange(min=1),
    help="Maximum duration in seconds.",
)
@click.option(
    "--end-by",
    "-e",
    help="End time (HH:MM format, 24h).",
)
@click.option(
    "--exit-when-empty",
    is_flag=True,
    help="Exit when nothing is claimable instead of polling.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Log ffmpeg commands instead of running them.",
)
@click.pass_context
def worker_command(
    ctx: click.Context,
    worker_id: str | None,
    max_files: int | None,
    max_duration: int | None,
    end_by: str | None,
    exit_when_empty: bool,
    dry_run: bool,
) -> None:
    """Claim and transcode jobs from the ledger.

    Several workers may run at once, on one machine or several sharing
    the database file. The worker runs until:
    - --max-files limit reached
    - --max-duration limit reached
    - --end-by time reached
    - the queue is empty, with --exit-when-empty
    - SIGTERM/SIGINT received (the running job is marked error)

    \b
    Examples:
        transcoder worker
        transcoder worker --max-files 5 --exit-when-empty
        transcoder worker --end-by 06:00
    """
    config: TranscoderConfig = ctx.find_root().obj["config"]
    transcode = config.transcode

    try:
        prober = FFprobeProber(config.tools.ffprobe)
        transcoder = FFmpegTranscoder(
            config.tools.ffmpeg,
            crf=transcode.crf,
            preset=transcode.preset,
            codecs=transcode.codecs,
            dry_run=dry_run or transcode.dry_run,
        )
    except (ProbeError, FileNotFoundError) as e:
        raise click.ClickException(str(e)) from e

    try:
        worker = JobWorker(
            conn=get_db_conn(ctx),
            prober=prober,
            transcoder=transcoder,
            worker_id=worker_id,
            liveness_timeout=config.ledger.liveness_timeout,
            heartbeat_interval=config.worker.heartbeat_interval,
            poll_interval=config.worker.poll_interval,
            poll_jitter=config.worker.poll_jitter,
            max_files=max_files or config.worker.max_files,
            max_duration=max_duration or config.worker.max_duration,
            end_by=end_by or config.worker.end_by,
            exit_when_empty=exit_when_empty or config.worker.exit_when_empty,
            lock_timeout=config.ledger.lock_timeout,
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    processed = worker.run()
    click.echo(f"Processed {processed} job(s).")
