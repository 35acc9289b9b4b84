"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (TRANSCODER_*)
3. Config file (~/.transcoder/config.toml)
4. Default values

Environment variables:
- TRANSCODER_CONFIG_PATH: Path to config file (overrides default location)
- TRANSCODER_DATA_DIR: Data directory (overrides ~/.transcoder/)
- TRANSCODER_DATABASE_PATH: Path to the ledger database
- TRANSCODER_LIVENESS_TIMEOUT: Seconds before a processing claim is stale
- TRANSCODER_LOCK_TIMEOUT: Seconds to wait for the SQLite write lock
- TRANSCODER_WORKER_POLL_INTERVAL, TRANSCODER_WORKER_HEARTBEAT_INTERVAL,
  TRANSCODER_WORKER_MAX_FILES, TRANSCODER_WORKER_MAX_DURATION,
  TRANSCODER_WORKER_END_BY, TRANSCODER_WORKER_EXIT_WHEN_EMPTY
- TRANSCODER_REAPER_INTERVAL: Seconds between stale-claim scans
- TRANSCODER_SCAN_EXCLUDE: Comma-separated exclude substrings
- TRANSCODER_SCAN_MIN_SIZE: Minimum file size in bytes
- TRANSCODER_CRF, TRANSCODER_PRESET, TRANSCODER_CODECS, TRANSCODER_DRY_RUN
- TRANSCODER_FFMPEG_PATH, TRANSCODER_FFPROBE_PATH: Tool locations
- TRANSCODER_SERVER_BIND, TRANSCODER_SERVER_PORT
- TRANSCODER_LOG_LEVEL, TRANSCODER_LOG_FILE, TRANSCODER_LOG_FORMAT
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from transcoder.config.env import EnvReader
from transcoder.config.models import (
    LedgerConfig,
    LoggingConfig,
    ReaperConfig,
    ScanConfig,
    ServerConfig,
    ToolPathsConfig,
    TranscodeConfig,
    TranscoderConfig,
    WorkerConfig,
)

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".transcoder"
DEFAULT_DB_FILENAME = "transcoder.sqlite3"


class ConfigError(Exception):
    """Raised when the config file cannot be read or parsed."""


def get_default_config_path() -> Path:
    """Get the default config file path.

    Can be overridden by TRANSCODER_CONFIG_PATH environment variable.
    """
    env_path = os.environ.get("TRANSCODER_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return get_data_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory holding config.toml and the database.

    Can be overridden by TRANSCODER_DATA_DIR environment variable.
    """
    env_path = os.environ.get("TRANSCODER_DATA_DIR")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_DIR


def load_config_file(path: Path | None = None, *, strict: bool = False) -> dict:
    """Load configuration from a TOML file.

    Args:
        path: Path to config file. If None, uses default location.
        strict: If True, raise ConfigError when the file cannot be read or
            parsed. If False (default), log a warning and use defaults.

    Returns:
        Parsed configuration dict. Empty dict if file doesn't exist.

    Raises:
        ConfigError: When strict=True and the file cannot be loaded.
    """
    if path is None:
        path = get_default_config_path()

    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    try:
        with path.open("rb") as f:
            config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        if strict:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e
        logger.warning("Failed to load config file %s: %s", path, e)
        return {}

    logger.debug("Loaded config from %s", path)
    return config


def _pick(*values: Any) -> Any:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _file_path(section: dict, key: str) -> Path | None:
    value = section.get(key)
    return Path(value).expanduser() if value else None


def get_config(
    config_path: Path | None = None,
    # CLI overrides (highest precedence)
    database_path: Path | None = None,
    ffmpeg_path: Path | None = None,
    ffprobe_path: Path | None = None,
    # Optional dependency injection for testing
    env_reader: EnvReader | None = None,
    *,
    strict: bool = False,
) -> TranscoderConfig:
    """Get transcoder configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides TRANSCODER_CONFIG_PATH).
        database_path: CLI override for the ledger database path.
        ffmpeg_path: CLI override for ffmpeg path.
        ffprobe_path: CLI override for ffprobe path.
        env_reader: Optional EnvReader for testing (uses os.environ if None).
        strict: If True, raise ConfigError on config file parse failures.

    Returns:
        TranscoderConfig with merged configuration.

    Raises:
        ConfigError: When strict=True and the config file cannot be parsed,
            or when a value has the wrong type.
        ValueError: If a merged value fails validation.
    """
    env = env_reader or EnvReader()
    file_config = load_config_file(config_path, strict=strict)
    try:
        return _build_config(
            file_config, env, database_path, ffmpeg_path, ffprobe_path
        )
    except TypeError as e:
        # e.g. liveness_timeout = "1h" reaching a numeric check
        raise ConfigError(f"Invalid value type in configuration: {e}") from e


def _build_config(
    file_config: dict,
    env: EnvReader,
    database_path: Path | None,
    ffmpeg_path: Path | None,
    ffprobe_path: Path | None,
) -> TranscoderConfig:
    ledger_file = file_config.get("ledger", {})
    ledger = LedgerConfig(
        database_path=_pick(
            database_path,
            env.get_path("DATABASE_PATH"),
            _file_path(ledger_file, "database_path"),
            get_data_dir() / DEFAULT_DB_FILENAME,
        ),
        liveness_timeout=_pick(
            env.get_int("LIVENESS_TIMEOUT"),
            ledger_file.get("liveness_timeout"),
            LedgerConfig.liveness_timeout,
        ),
        lock_timeout=_pick(
            env.get_float("LOCK_TIMEOUT"),
            ledger_file.get("lock_timeout"),
            LedgerConfig.lock_timeout,
        ),
    )

    worker_file = file_config.get("worker", {})
    worker = WorkerConfig(
        poll_interval=_pick(
            env.get_float("WORKER_POLL_INTERVAL"),
            worker_file.get("poll_interval"),
            WorkerConfig.poll_interval,
        ),
        poll_jitter=_pick(
            env.get_float("WORKER_POLL_JITTER"),
            worker_file.get("poll_jitter"),
            WorkerConfig.poll_jitter,
        ),
        heartbeat_interval=_pick(
            env.get_float("WORKER_HEARTBEAT_INTERVAL"),
            worker_file.get("heartbeat_interval"),
            WorkerConfig.heartbeat_interval,
        ),
        # 0 means unlimited, as in the config file
        max_files=_pick(
            env.get_int("WORKER_MAX_FILES"), worker_file.get("max_files"), 0
        )
        or None,
        max_duration=_pick(
            env.get_int("WORKER_MAX_DURATION"), worker_file.get("max_duration"), 0
        )
        or None,
        end_by=_pick(env.get_str("WORKER_END_BY"), worker_file.get("end_by")),
        exit_when_empty=_pick(
            env.get_bool("WORKER_EXIT_WHEN_EMPTY"),
            worker_file.get("exit_when_empty"),
            False,
        ),
    )

    reaper_file = file_config.get("reaper", {})
    reaper = ReaperConfig(
        interval=_pick(
            env.get_float("REAPER_INTERVAL"),
            reaper_file.get("interval"),
            ReaperConfig.interval,
        ),
    )

    scan_file = file_config.get("scan", {})
    scan_defaults = ScanConfig()
    scan = ScanConfig(
        extensions=_pick(
            env.get_list("SCAN_EXTENSIONS"),
            scan_file.get("extensions"),
            scan_defaults.extensions,
        ),
        exclude=_pick(
            env.get_list("SCAN_EXCLUDE"),
            scan_file.get("exclude"),
            scan_defaults.exclude,
        ),
        min_size=_pick(env.get_int("SCAN_MIN_SIZE"), scan_file.get("min_size")),
    )

    transcode_file = file_config.get("transcode", {})
    transcode = TranscodeConfig(
        crf=_pick(env.get_int("CRF"), transcode_file.get("crf"), TranscodeConfig.crf),
        preset=_pick(
            env.get_int("PRESET"), transcode_file.get("preset"), TranscodeConfig.preset
        ),
        codecs=_pick(
            env.get_list("CODECS"),
            transcode_file.get("codecs"),
            TranscodeConfig().codecs,
        ),
        dry_run=_pick(env.get_bool("DRY_RUN"), transcode_file.get("dry_run"), False),
    )

    tools_file = file_config.get("tools", {})
    tools = ToolPathsConfig(
        ffmpeg=_pick(
            ffmpeg_path,
            env.get_path("FFMPEG_PATH", must_exist=True),
            _file_path(tools_file, "ffmpeg"),
        ),
        ffprobe=_pick(
            ffprobe_path,
            env.get_path("FFPROBE_PATH", must_exist=True),
            _file_path(tools_file, "ffprobe"),
        ),
    )

    server_file = file_config.get("server", {})
    server = ServerConfig(
        bind=_pick(
            env.get_str("SERVER_BIND"), server_file.get("bind"), ServerConfig.bind
        ),
        port=_pick(
            env.get_int("SERVER_PORT"), server_file.get("port"), ServerConfig.port
        ),
        shutdown_timeout=_pick(
            env.get_float("SERVER_SHUTDOWN_TIMEOUT"),
            server_file.get("shutdown_timeout"),
            ServerConfig.shutdown_timeout,
        ),
    )

    logging_file = file_config.get("logging", {})
    logging_config = LoggingConfig(
        level=_pick(
            env.get_str("LOG_LEVEL"), logging_file.get("level"), LoggingConfig.level
        ),
        file=_pick(env.get_path("LOG_FILE"), _file_path(logging_file, "file")),
        format=_pick(
            env.get_str("LOG_FORMAT"), logging_file.get("format"), LoggingConfig.format
        ),
        include_stderr=_pick(
            env.get_bool("LOG_INCLUDE_STDERR"),
            logging_file.get("include_stderr"),
            False,
        ),
        max_bytes=_pick(logging_file.get("max_bytes"), LoggingConfig.max_bytes),
        backup_count=_pick(
            logging_file.get("backup_count"), LoggingConfig.backup_count
        ),
    )

    return TranscoderConfig(
        ledger=ledger,
        worker=worker,
        reaper=reaper,
        scan=scan,
        transcode=transcode,
        tools=tools,
        server=server,
        logging=logging_config,
    )
