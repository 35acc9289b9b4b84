"""Typed access to TRANSCODER_* environment variables.

EnvReader takes an optional env mapping so tests can inject variables
without touching os.environ.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRANSCODER_"

_TRUE_VALUES = ("true", "1", "yes", "on")


class EnvReader:
    """Environment variable reader with type conversion.

    Names are given without the prefix: ``reader.get_int("LIVENESS_TIMEOUT")``
    reads ``TRANSCODER_LIVENESS_TIMEOUT``. Unset variables return the
    default; set but unparseable ones log a warning and return the default.

    Example:
        reader = EnvReader(env={"TRANSCODER_SERVER_PORT": "9000"})
        reader.get_int("SERVER_PORT", 8322)  # 9000
    """

    def __init__(
        self, env: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ
        self._prefix = prefix

    def _raw(self, name: str) -> str | None:
        value = self._env.get(self._prefix + name)
        if value is None or value.strip() == "":
            return None
        return value.strip()

    def get_str(self, name: str, default: str | None = None) -> str | None:
        value = self._raw(name)
        return default if value is None else value

    def get_int(self, name: str, default: int | None = None) -> int | None:
        value = self._raw(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s%s: %s", self._prefix, name, value)
            return default

    def get_float(self, name: str, default: float | None = None) -> float | None:
        value = self._raw(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float value for %s%s: %s", self._prefix, name, value)
            return default

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        """Get a boolean.

        "true", "1", "yes" and "on" (any case) are true; every other
        non-empty value is false.
        """
        value = self._raw(name)
        if value is None:
            return default
        return value.lower() in _TRUE_VALUES

    def get_path(
        self, name: str, must_exist: bool = False, default: Path | None = None
    ) -> Path | None:
        """Get a path with ``~`` expanded.

        With must_exist, a path that does not exist logs a warning and
        falls back to the default.
        """
        value = self._raw(name)
        if value is None:
            return default
        path = Path(value).expanduser()
        if must_exist and not path.exists():
            logger.warning(
                "Environment variable %s%s points to non-existent path: %s",
                self._prefix,
                name,
                value,
            )
            return default
        return path

    def get_list(
        self, name: str, separator: str = ",", default: list[str] | None = None
    ) -> list[str] | None:
        """Get a separator-delimited list, dropping empty items."""
        value = self._raw(name)
        if value is None:
            return default
        return [part.strip() for part in value.split(separator) if part.strip()]
