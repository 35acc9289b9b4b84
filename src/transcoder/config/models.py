"""Configuration models for the transcoder.

Every section of config.toml maps to one dataclass here. Validation
happens in __post_init__, so an invalid value fails when the config is
built rather than when it is first used.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from transcoder.jobs.queue import DEFAULT_LIVENESS_TIMEOUT
from transcoder.jobs.reaper import DEFAULT_REAPER_INTERVAL
from transcoder.scanner.collector import DEFAULT_EXTENSIONS

_END_BY_PATTERN = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")


@dataclass
class LedgerConfig:
    """Configuration for the SQLite ledger."""

    # Database file (None = ~/.transcoder/transcoder.sqlite3)
    database_path: Path | None = None

    # Seconds without a heartbeat before a processing claim is stale
    liveness_timeout: int = DEFAULT_LIVENESS_TIMEOUT

    # Seconds to wait for the SQLite write lock
    lock_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.liveness_timeout <= 0:
            raise ValueError(
                f"liveness_timeout must be positive, got {self.liveness_timeout}"
            )
        if self.lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {self.lock_timeout}")


@dataclass
class WorkerConfig:
    """Configuration for job worker defaults."""

    # Seconds to sleep when the queue is empty
    poll_interval: float = 5.0

    # Random spread applied to poll_interval (fraction, 0-1)
    poll_jitter: float = 0.25

    # Seconds between heartbeats while a job is processing
    heartbeat_interval: float = 60.0

    # Maximum number of files to process per worker run
    max_files: int | None = None

    # Maximum duration in seconds per worker run
    max_duration: int | None = None

    # End time for worker (HH:MM format, 24h)
    end_by: str | None = None

    # Exit instead of polling when nothing is claimable
    exit_when_empty: bool = False

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if not 0 <= self.poll_jitter < 1:
            raise ValueError(f"poll_jitter must be in [0, 1), got {self.poll_jitter}")
        if self.heartbeat_interval <= 0:
            raise ValueError(
                f"heartbeat_interval must be positive, got {self.heartbeat_interval}"
            )
        if self.max_files is not None and self.max_files < 1:
            raise ValueError(f"max_files must be at least 1, got {self.max_files}")
        if self.max_duration is not None and self.max_duration < 1:
            raise ValueError(
                f"max_duration must be at least 1, got {self.max_duration}"
            )
        if self.end_by is not None and not _END_BY_PATTERN.match(self.end_by):
            raise ValueError(f"end_by must be HH:MM (24h), got {self.end_by}")


@dataclass
class ReaperConfig:
    """Configuration for the stale-claim reaper."""

    # Seconds between scans
    interval: float = DEFAULT_REAPER_INTERVAL

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")


@dataclass
class ScanConfig:
    """Configuration for directory scans."""

    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude: list[str] = field(default_factory=list)
    min_size: int | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.extensions:
            raise ValueError("extensions must not be empty")
        if self.min_size is not None and self.min_size < 0:
            raise ValueError(f"min_size must be >= 0, got {self.min_size}")


@dataclass
class TranscodeConfig:
    """Configuration for the AV1 encode."""

    # SVT-AV1 constant rate factor (0-63, lower is better quality)
    crf: int = 30

    # SVT-AV1 preset (0-13, lower is slower and better)
    preset: int = 6

    # Source video codecs that get transcoded; others are skipped
    codecs: list[str] = field(default_factory=lambda: ["h264"])

    # Log the ffmpeg command instead of running it
    dry_run: bool = False

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 0 <= self.crf <= 63:
            raise ValueError(f"crf must be 0-63, got {self.crf}")
        if not 0 <= self.preset <= 13:
            raise ValueError(f"preset must be 0-13, got {self.preset}")


@dataclass
class ToolPathsConfig:
    """Configuration for external tool paths.

    All paths are optional. If not specified, tools are looked up in PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None


@dataclass
class ServerConfig:
    """Configuration for daemon server mode.

    Controls bind address, port, and shutdown behavior for `transcoder serve`.
    """

    bind: str = "127.0.0.1"
    """Network address to bind to. Default localhost."""

    port: int = 8322
    """Port number for HTTP server."""

    shutdown_timeout: float = 30.0
    """Seconds to wait for graceful shutdown before cancelling tasks."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")
        if self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class TranscoderConfig:
    """Main configuration.

    Aggregates all configuration sections.
    """

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    reaper: ReaperConfig = field(default_factory=ReaperConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    transcode: TranscodeConfig = field(default_factory=TranscodeConfig)
    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        """Validate settings that span sections."""
        if self.worker.heartbeat_interval >= self.ledger.liveness_timeout:
            raise ValueError(
                f"worker.heartbeat_interval ({self.worker.heartbeat_interval}s) "
                "must be less than ledger.liveness_timeout "
                f"({self.ledger.liveness_timeout}s)"
            )
