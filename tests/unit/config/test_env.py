"""Tests for EnvReader."""

import logging
from pathlib import Path

import pytest

from transcoder.config.env import EnvReader


def reader(**values: str) -> EnvReader:
    return EnvReader(env={f"TRANSCODER_{k}": v for k, v in values.items()})


class TestEnvReader:
    """Tests for typed environment access."""

    def test_unset_returns_default(self):
        env = reader()
        assert env.get_str("LOG_LEVEL", "info") == "info"
        assert env.get_int("SERVER_PORT") is None

    def test_blank_is_unset(self):
        assert reader(LOG_LEVEL="  ").get_str("LOG_LEVEL", "info") == "info"

    def test_get_str_strips(self):
        assert reader(SERVER_BIND=" 0.0.0.0 ").get_str("SERVER_BIND") == "0.0.0.0"

    def test_get_int(self):
        assert reader(SERVER_PORT="9000").get_int("SERVER_PORT", 8322) == 9000

    def test_invalid_int_warns_and_defaults(self, caplog):
        with caplog.at_level(logging.WARNING):
            value = reader(SERVER_PORT="lots").get_int("SERVER_PORT", 8322)

        assert value == 8322
        assert "TRANSCODER_SERVER_PORT" in caplog.text

    def test_get_float(self):
        assert reader(LOCK_TIMEOUT="2.5").get_float("LOCK_TIMEOUT") == 2.5
        assert reader(LOCK_TIMEOUT="x").get_float("LOCK_TIMEOUT", 30.0) == 30.0

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("1", True), ("YES", True), ("on", True), ("no", False)],
    )
    def test_get_bool(self, raw, expected):
        assert reader(DRY_RUN=raw).get_bool("DRY_RUN") is expected

    def test_get_path_expands_user(self):
        path = reader(LOG_FILE="~/logs/t.log").get_path("LOG_FILE")
        assert path == Path("~/logs/t.log").expanduser()

    def test_get_path_must_exist(self, tmp_path: Path):
        missing = str(tmp_path / "nope")
        existing = str(tmp_path)

        assert reader(FFMPEG_PATH=missing).get_path("FFMPEG_PATH", must_exist=True) is None
        assert reader(FFMPEG_PATH=existing).get_path(
            "FFMPEG_PATH", must_exist=True
        ) == Path(existing)

    def test_get_list(self):
        env = reader(SCAN_EXCLUDE="/trash, /tmp ,,")
        assert env.get_list("SCAN_EXCLUDE") == ["/trash", "/tmp"]

    def test_custom_prefix(self):
        env = EnvReader(env={"X_PORT": "1"}, prefix="X_")
        assert env.get_int("PORT") == 1
