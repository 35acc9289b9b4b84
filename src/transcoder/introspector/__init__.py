"""Media metadata probing."""

from transcoder.introspector.ffprobe import FFprobeProber, parse_ffprobe_output
from transcoder.introspector.interface import MetadataProber, ProbeError, ProbeResult

__all__ = [
    "FFprobeProber",
    "MetadataProber",
    "ProbeError",
    "ProbeResult",
    "parse_ffprobe_output",
]
