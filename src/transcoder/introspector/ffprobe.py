"""FFprobe-based implementation of the MetadataProber protocol."""

import json
import logging
import shutil
import subprocess  # nosec B404 - subprocess is required for ffprobe invocation
from pathlib import Path

from transcoder.introspector.interface import ProbeError, ProbeResult

logger = logging.getLogger(__name__)


def _parse_int(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(str(value))
    except ValueError:
        return None


def _parse_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(str(value))
    except ValueError:
        return None


def parse_frame_rate(value: str | None) -> float | None:
    """Parse an ffprobe rational frame rate like "30000/1001".

    Returns None for missing, malformed or zero-denominator values.
    """
    if not value:
        return None
    numerator, _, denominator = value.partition("/")
    num = _parse_float(numerator)
    if num is None:
        return None
    if not denominator:
        return num
    den = _parse_float(denominator)
    if not den:
        return None
    return num / den


def parse_ffprobe_output(data: dict, raw: str) -> ProbeResult:
    """Build a ProbeResult from parsed ffprobe JSON.

    Stream values come from the first video stream; files without one
    (audio-only) have no codec, resolution or frame rate.

    Args:
        data: Parsed JSON from ffprobe -show_format -show_streams.
        raw: The original JSON text, kept verbatim.
    """
    fmt = data.get("format") or {}
    video = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        None,
    )

    return ProbeResult(
        raw=raw,
        video_codec=video.get("codec_name") if video else None,
        duration=_parse_float(fmt.get("duration")),
        width=_parse_int(video.get("width")) if video else None,
        height=_parse_int(video.get("height")) if video else None,
        frame_rate=parse_frame_rate(video.get("r_frame_rate")) if video else None,
        bitrate=_parse_int(fmt.get("bit_rate")),
        size=_parse_int(fmt.get("size")),
    )


class FFprobeProber:
    """ffprobe-based implementation of MetadataProber.

    Runs ``ffprobe -v error -print_format json -show_format -show_streams``
    and keeps its JSON output as the stored metadata blob.
    """

    def __init__(self, ffprobe_path: Path | None = None, timeout: int = 60) -> None:
        """Initialize the prober.

        Args:
            ffprobe_path: Explicit path to ffprobe. If not provided, ffprobe
                is looked up in PATH.
            timeout: Seconds before an ffprobe run is killed.

        Raises:
            ProbeError: If ffprobe is not available.
        """
        resolved = ffprobe_path or shutil.which("ffprobe")
        if resolved is None:
            raise ProbeError(
                "ffprobe is not installed or not in PATH. Install ffmpeg, or "
                "set TRANSCODER_FFPROBE_PATH / [tools] ffprobe in config.toml"
            )
        self._ffprobe_path = Path(resolved)
        self._timeout = timeout

    def probe(self, path: Path) -> ProbeResult:
        """Extract metadata from a media file.

        Raises:
            ProbeError: If the file is missing or ffprobe fails.
        """
        if not path.exists():
            raise ProbeError(f"File not found: {path}")

        logger.debug("ffprobe %s", path)
        try:
            result = subprocess.run(  # nosec B603 - ffprobe path is validated
                [
                    str(self._ffprobe_path),
                    "-v",
                    "error",
                    "-print_format",
                    "json",
                    "-show_format",
                    "-show_streams",
                    str(path),
                ],
                capture_output=True,
                text=True,
                errors="replace",
                check=True,
                timeout=self._timeout,
            )
            data = json.loads(result.stdout)
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffprobe timed out for {path} after {e.timeout}s") from e
        except subprocess.CalledProcessError as e:
            raise ProbeError(
                f"ffprobe failed for {path} with exit code {e.returncode}: "
                f"{(e.stderr or '').strip()}"
            ) from e
        except json.JSONDecodeError as e:
            raise ProbeError(f"Invalid ffprobe output for {path}: {e}") from e

        if "streams" not in data or "format" not in data:
            raise ProbeError(
                f"Incomplete ffprobe output for {path}. "
                "File may be corrupted or not a valid media file."
            )

        return parse_ffprobe_output(data, result.stdout.strip())
