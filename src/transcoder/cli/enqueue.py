"""CLI commands that put files into the ledger."""

import logging
from pathlib import Path

import click

from transcoder.cli import get_db_conn
from transcoder.config import TranscoderConfig
from transcoder.jobs.exceptions import ConflictError
from transcoder.jobs.ledger import enqueue_job, upsert_job
from transcoder.scanner import gather_files

logger = logging.getLogger(__name__)


@click.command("add")
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_context
def add_command(ctx: click.Context, files: tuple[Path, ...]) -> None:
    """Add FILES to the ledger, resetting any existing entries to pending.

    A file that is already done or in error is queued again with its
    previous outcome cleared.
    """
    conn = get_db_conn(ctx)
    for file in files:
        path = file.resolve()
        try:
            job = upsert_job(conn, str(path), path.stat().st_size)
        except ConflictError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Queued {job.path}")


@click.command("scan")
@click.argument(
    "directory",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--exclude",
    "-e",
    multiple=True,
    help="Skip paths containing this substring (repeatable).",
)
@click.option(
    "--min-size",
    type=click.IntRange(min=0),
    default=None,
    help="Skip files smaller than this many bytes.",
)
@click.option(
    "--force",
    is_flag=True,
    help="Reset files already in the ledger to pending.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="List what would be queued without writing.",
)
@click.pass_context
def scan_command(
    ctx: click.Context,
    directory: Path,
    exclude: tuple[str, ...],
    min_size: int | None,
    force: bool,
    dry_run: bool,
) -> None:
    """Find video files under DIRECTORY and queue them.

    Files already in the ledger are left alone unless --force is given,
    so re-scanning a library only picks up new files.

    \b
    Examples:
        transcoder scan /media/tv
        transcoder scan /media --exclude /media/trash --min-size 104857600
    """
    config: TranscoderConfig = ctx.find_root().obj["config"]
    patterns = list(exclude) or config.scan.exclude
    size_floor = min_size if min_size is not None else config.scan.min_size

    try:
        files = gather_files(
            directory.resolve(),
            exclude=patterns,
            min_size=size_floor,
            extensions=config.scan.extensions,
        )
    except OSError as e:
        raise click.ClickException(f"Scan failed: {e}") from e

    if dry_run:
        for found in files:
            click.echo(str(found.path))
        click.echo(f"Found {len(files)} file(s).")
        return

    conn = get_db_conn(ctx)
    queued = 0
    try:
        for found in files:
            if force:
                upsert_job(conn, str(found.path), found.size)
                queued += 1
            elif enqueue_job(conn, str(found.path), found.size):
                queued += 1
    except ConflictError as e:
        raise click.ClickException(str(e)) from e

    logger.info("Scan of %s queued %d of %d file(s)", directory, queued, len(files))
    click.echo(
        f"Found {len(files)} file(s), queued {queued}, "
        f"skipped {len(files) - queued} already in the ledger."
    )
