"""Configuration management for the transcoder.

Configuration is loaded with precedence handling:
1. CLI flags (highest priority)
2. Environment variables (TRANSCODER_*)
3. Config file (~/.transcoder/config.toml)
4. Default values (lowest priority)
"""

from transcoder.config.env import EnvReader
from transcoder.config.loader import (
    ConfigError,
    get_config,
    get_data_dir,
    get_default_config_path,
    load_config_file,
)
from transcoder.config.logging_factory import build_logging_config
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

__all__ = [
    "ConfigError",
    "EnvReader",
    "LedgerConfig",
    "LoggingConfig",
    "ReaperConfig",
    "ScanConfig",
    "ServerConfig",
    "ToolPathsConfig",
    "TranscodeConfig",
    "TranscoderConfig",
    "WorkerConfig",
    "build_logging_config",
    "get_config",
    "get_data_dir",
    "get_default_config_path",
    "load_config_file",
]
