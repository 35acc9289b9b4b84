"""Transcoder protocol and result type."""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from transcoder.introspector.interface import ProbeResult


@dataclass(frozen=True)
class TranscodeResult:
    """Outcome of a transcode attempt."""

    success: bool
    """True if the job should be recorded as done."""

    error_message: str | None = None
    """Why the transcode failed, when success is False."""

    output_path: Path | None = None
    """Path of the produced file, if one was written."""

    skipped: bool = False
    """True if nothing needed doing (codec not selected, output exists, dry run)."""

    cancelled: bool = False
    """True if the transcode was stopped through its cancel event."""


class Transcoder(Protocol):
    """Protocol for transcoder implementations.

    The worker only consumes the returned TranscodeResult; how the file
    is produced is up to the implementation.
    """

    def transcode(
        self,
        path: Path,
        probe: ProbeResult,
        *,
        file_size: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscodeResult:
        """Transcode one file.

        Args:
            path: Source file.
            probe: Metadata of the source file.
            file_size: Size recorded in the ledger, for log output.
            cancel_event: Once set, the transcode stops as soon as it can
                (or never starts) and returns a cancelled result. The event
                may be set before transcode() is called.

        Returns:
            TranscodeResult describing the outcome. Implementations report
            failures through the result rather than raising.
        """
        ...
