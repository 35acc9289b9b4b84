"""FFmpeg-based implementation of the Transcoder protocol.

Encodes the video stream to AV1 with SVT-AV1 and copies audio. Output is
written to ``<stem>_tmp.mp4`` next to the source and renamed to
``<stem>_av1.mp4`` only after ffmpeg exits successfully, so a crashed run
never leaves a file that looks finished.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess  # nosec B404 - subprocess is required for ffmpeg invocation
import threading
import time
from collections import deque
from collections.abc import Sequence
from pathlib import Path

from transcoder.core.formatting import format_file_size
from transcoder.executor.interface import TranscodeResult
from transcoder.executor.progress import (
    FFmpegProgress,
    is_progress_line,
    parse_progress_line,
)
from transcoder.introspector.interface import ProbeResult

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_av1"
TEMP_SUFFIX = "_tmp"
OUTPUT_EXTENSION = ".mp4"

# Lines of non-progress ffmpeg output kept for error messages
_ERROR_TAIL_LINES = 20

# Seconds between checks of the cancel event while ffmpeg runs
_CANCEL_POLL_INTERVAL = 0.2

_CANCELLED = TranscodeResult(
    success=False, error_message="transcode cancelled", cancelled=True
)


def output_path_for(source: Path) -> Path:
    """Return the final output path for a source file."""
    return source.with_name(f"{source.stem}{OUTPUT_SUFFIX}{OUTPUT_EXTENSION}")


def temp_path_for(source: Path) -> Path:
    """Return the in-progress output path for a source file."""
    return source.with_name(f"{source.stem}{TEMP_SUFFIX}{OUTPUT_EXTENSION}")


def build_ffmpeg_command(
    ffmpeg_path: Path | str,
    source: Path,
    destination: Path,
    crf: int,
    preset: int,
) -> list[str]:
    """Build the ffmpeg argument list for an AV1 transcode."""
    return [
        str(ffmpeg_path),
        "-y",
        "-i",
        str(source),
        "-c:v",
        "libsvtav1",
        "-preset",
        str(preset),
        "-crf",
        str(crf),
        "-c:a",
        "copy",
        "-progress",
        "-",
        "-nostats",
        str(destination),
    ]


class FFmpegTranscoder:
    """Transcode files to AV1 with ffmpeg.

    Files whose video codec is not in ``codecs`` are skipped, as are files
    that already have an output next to them. With ``dry_run`` the command
    is logged instead of run. Progress is logged at INFO at most once per
    ``progress_interval`` seconds.
    """

    def __init__(
        self,
        ffmpeg_path: Path | None = None,
        crf: int = 30,
        preset: int = 6,
        codecs: Sequence[str] = ("h264",),
        dry_run: bool = False,
        progress_interval: float = 30.0,
    ) -> None:
        """Initialize the transcoder.

        Raises:
            FileNotFoundError: If ffmpeg is needed but not available.
        """
        resolved = ffmpeg_path or shutil.which("ffmpeg")
        if resolved is None and not dry_run:
            raise FileNotFoundError(
                "ffmpeg is not installed or not in PATH. Install ffmpeg, or "
                "set TRANSCODER_FFMPEG_PATH / [tools] ffmpeg in config.toml"
            )
        self._ffmpeg_path = Path(resolved) if resolved else Path("ffmpeg")
        self.crf = crf
        self.preset = preset
        self.codecs = tuple(c.casefold() for c in codecs)
        self.dry_run = dry_run
        self.progress_interval = progress_interval

    def _skip_reason(self, source: Path, probe: ProbeResult) -> str | None:
        codec = (probe.video_codec or "").casefold()
        if self.codecs and codec not in self.codecs:
            return f"video codec {probe.video_codec or 'none'} not selected"
        if output_path_for(source).is_file():
            return f"output {output_path_for(source).name} already exists"
        return None

    def transcode(
        self,
        path: Path,
        probe: ProbeResult,
        *,
        file_size: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscodeResult:
        """Transcode one file. See Transcoder.transcode."""
        reason = self._skip_reason(path, probe)
        if reason is not None:
            logger.info("Skipping %s: %s", path, reason)
            return TranscodeResult(success=True, skipped=True)

        destination = output_path_for(path)
        temp_file = temp_path_for(path)
        cmd = build_ffmpeg_command(
            self._ffmpeg_path, path, temp_file, self.crf, self.preset
        )

        if self.dry_run:
            size = path.stat().st_size if file_size is None else file_size
            logger.info(
                "Would transcode %s (%s, %s) with command '%s'",
                path,
                probe.video_codec,
                format_file_size(size),
                shlex.join(cmd),
            )
            return TranscodeResult(success=True, skipped=True)

        return self._run(
            cmd, temp_file, destination, probe.total_frames, cancel_event
        )

    def _run(
        self,
        cmd: list[str],
        temp_file: Path,
        destination: Path,
        total_frames: int | None,
        cancel_event: threading.Event | None,
    ) -> TranscodeResult:
        cancel_event = cancel_event or threading.Event()
        if cancel_event.is_set():
            logger.info("Not starting ffmpeg for %s: cancelled", temp_file.name)
            return _CANCELLED

        logger.debug("Executing command: %s", shlex.join(cmd))
        error_tail: deque[str] = deque(maxlen=_ERROR_TAIL_LINES)
        progress = FFmpegProgress()
        last_report: float | None = None

        # stderr is merged into stdout so a chatty ffmpeg cannot fill an
        # unread pipe and block
        process = subprocess.Popen(  # nosec B603
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
        )
        watcher = threading.Thread(
            target=_terminate_on_cancel,
            args=(process, cancel_event),
            daemon=True,
            name=f"ffmpeg-cancel-{process.pid}",
        )
        watcher.start()

        try:
            assert process.stdout is not None  # nosec B101
            for line in process.stdout:
                if not is_progress_line(line):
                    if line.strip():
                        error_tail.append(line.rstrip())
                    continue
                parsed = parse_progress_line(line)
                for key, value in parsed.items():
                    setattr(progress, key, value)
                if "frame" not in parsed:
                    continue
                now = time.monotonic()
                if last_report is None or now - last_report >= self.progress_interval:
                    last_report = now
                    logger.info(
                        "Transcoding %s: frame %d/%s (%.1f%%)",
                        destination.name,
                        progress.frame,
                        total_frames if total_frames is not None else "?",
                        progress.get_percent(total_frames),
                    )
            returncode = process.wait()
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()
            watcher.join()

        if cancel_event.is_set():
            temp_file.unlink(missing_ok=True)
            return _CANCELLED

        if returncode != 0:
            temp_file.unlink(missing_ok=True)
            detail = "\n".join(error_tail) or "no output"
            return TranscodeResult(
                success=False,
                error_message=f"ffmpeg failed with exit code {returncode}: {detail}",
            )

        temp_file.replace(destination)
        logger.info("Wrote %s", destination)
        return TranscodeResult(success=True, output_path=destination)


def _terminate_on_cancel(
    process: subprocess.Popen[str], cancel_event: threading.Event
) -> None:
    """Terminate process once cancel_event is set; return when it exits."""
    while process.poll() is None:
        if cancel_event.wait(_CANCEL_POLL_INTERVAL):
            if process.poll() is None:
                logger.info("Terminating ffmpeg (pid %d)", process.pid)
                process.terminate()
            return
