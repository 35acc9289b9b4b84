"""MetadataProber interface for media metadata extraction."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class ProbeError(Exception):
    """Raised when metadata extraction fails."""

    pass


@dataclass(frozen=True)
class ProbeResult:
    """Metadata extracted from a media file.

    ``raw`` is what gets stored in the ledger's ffprobe_info column; the
    other fields are parsed conveniences for the transcoder.
    """

    raw: str
    """Serialized metadata, stored verbatim."""

    video_codec: str | None = None
    duration: float | None = None
    width: int | None = None
    height: int | None = None
    frame_rate: float | None = None
    bitrate: int | None = None
    size: int | None = None

    @property
    def total_frames(self) -> int | None:
        """Estimated frame count, used for progress reporting."""
        if self.duration is None or self.frame_rate is None:
            return None
        return int(self.duration * self.frame_rate)


class MetadataProber(Protocol):
    """Protocol for metadata prober implementations."""

    def probe(self, path: Path) -> ProbeResult:
        """Extract metadata from a media file.

        Raises:
            ProbeError: If the file cannot be probed.
        """
        ...
