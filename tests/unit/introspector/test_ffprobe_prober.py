"""Tests for the ffprobe prober and output parsing."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from transcoder.introspector import FFprobeProber, ProbeError
from transcoder.introspector.ffprobe import parse_ffprobe_output, parse_frame_rate

FFPROBE_OUTPUT = {
    "streams": [
        {"index": 0, "codec_type": "audio", "codec_name": "aac"},
        {
            "index": 1,
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30000/1001",
        },
    ],
    "format": {"duration": "60.000000", "bit_rate": "5000000", "size": "37500000"},
}


def make_stub(tmp_path: Path, body: str) -> Path:
    stub = tmp_path / "ffprobe"
    stub.write_text(f"#!/bin/sh\n{body}\n")
    stub.chmod(0o755)
    return stub


@pytest.fixture
def media(tmp_path: Path) -> Path:
    path = tmp_path / "movie.mkv"
    path.write_bytes(b"data")
    return path


class TestParseFrameRate:
    """Tests for parse_frame_rate."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("25/1", 25.0), ("24", 24.0), ("0/0", None), ("", None), (None, None), ("x/1", None)],
    )
    def test_values(self, value, expected):
        assert parse_frame_rate(value) == expected

    def test_ntsc(self):
        assert parse_frame_rate("30000/1001") == pytest.approx(29.97, rel=1e-3)


class TestParseFFprobeOutput:
    """Tests for parse_ffprobe_output."""

    def test_uses_first_video_stream(self):
        raw = json.dumps(FFPROBE_OUTPUT)

        result = parse_ffprobe_output(FFPROBE_OUTPUT, raw)

        assert result.raw == raw
        assert result.video_codec == "h264"
        assert result.width == 1920
        assert result.height == 1080
        assert result.duration == 60.0
        assert result.bitrate == 5000000
        assert result.size == 37500000
        assert result.total_frames == 1798

    def test_audio_only(self):
        data = {"streams": [{"codec_type": "audio", "codec_name": "flac"}], "format": {}}

        result = parse_ffprobe_output(data, "{}")

        assert result.video_codec is None
        assert result.frame_rate is None
        assert result.total_frames is None


class TestFFprobeProber:
    """Tests for FFprobeProber.probe against shell stubs."""

    def test_missing_ffprobe(self):
        with patch("transcoder.introspector.ffprobe.shutil.which", return_value=None):
            with pytest.raises(ProbeError, match="ffprobe is not installed"):
                FFprobeProber()

    def test_probe(self, tmp_path: Path, media: Path):
        stub = make_stub(tmp_path, f"echo '{json.dumps(FFPROBE_OUTPUT)}'")

        result = FFprobeProber(stub).probe(media)

        assert result.video_codec == "h264"
        assert json.loads(result.raw) == FFPROBE_OUTPUT

    def test_missing_file(self, tmp_path: Path):
        stub = make_stub(tmp_path, "echo '{}'")

        with pytest.raises(ProbeError, match="File not found"):
            FFprobeProber(stub).probe(tmp_path / "missing.mkv")

    def test_nonzero_exit(self, tmp_path: Path, media: Path):
        stub = make_stub(tmp_path, "echo 'moov atom not found' >&2\nexit 1")

        with pytest.raises(ProbeError, match="moov atom not found"):
            FFprobeProber(stub).probe(media)

    def test_invalid_json(self, tmp_path: Path, media: Path):
        stub = make_stub(tmp_path, "echo 'not json'")

        with pytest.raises(ProbeError, match="Invalid ffprobe output"):
            FFprobeProber(stub).probe(media)

    def test_incomplete_output(self, tmp_path: Path, media: Path):
        stub = make_stub(tmp_path, "echo '{\"format\": {}}'")

        with pytest.raises(ProbeError, match="Incomplete ffprobe output"):
            FFprobeProber(stub).probe(media)

    def test_timeout(self, tmp_path: Path, media: Path):
        stub = make_stub(tmp_path, "exec sleep 10")

        with pytest.raises(ProbeError, match="timed out"):
            FFprobeProber(stub, timeout=1).probe(media)
