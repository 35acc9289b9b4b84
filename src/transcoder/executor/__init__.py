"""Transcode execution.

- interface: Transcoder protocol and TranscodeResult
- ffmpeg: SVT-AV1 transcoder built on ffmpeg
- progress: parsing of ffmpeg -progress output
"""

from transcoder.executor.ffmpeg import (
    FFmpegTranscoder,
    build_ffmpeg_command,
    output_path_for,
    temp_path_for,
)
from transcoder.executor.interface import TranscodeResult, Transcoder
from transcoder.executor.progress import FFmpegProgress, parse_progress_line

__all__ = [
    "FFmpegProgress",
    "FFmpegTranscoder",
    "TranscodeResult",
    "Transcoder",
    "build_ffmpeg_command",
    "output_path_for",
    "parse_progress_line",
    "temp_path_for",
]
