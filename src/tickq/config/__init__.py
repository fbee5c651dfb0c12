"""Configuration parsing and validation."""

from tickq.config.env import (
    DEFAULT_CONFIG_FILENAME,
    ENV_CONFIG_PATH,
    ENV_LOG_JSON,
    ENV_LOG_LEVEL,
    ENV_TICK_INTERVAL_MS,
    EnvConfig,
    apply_env_overrides,
    get_config_path,
    load_env_config,
    resolve_config,
)
from tickq.config.schema import (
    DEFAULT_TICK_INTERVAL_MS,
    ConfigError,
    ConfigParseError,
    ConfigValidationError,
    DriverConfig,
    LoggingConfig,
    SchedulerConfig,
    load_config,
    parse_config,
)

__all__ = [
    # Schema types
    "SchedulerConfig",
    "DriverConfig",
    "LoggingConfig",
    "DEFAULT_TICK_INTERVAL_MS",
    # Schema functions
    "parse_config",
    "load_config",
    # Schema errors
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # Environment
    "EnvConfig",
    "load_env_config",
    "apply_env_overrides",
    "get_config_path",
    "resolve_config",
    "ENV_CONFIG_PATH",
    "ENV_LOG_LEVEL",
    "ENV_LOG_JSON",
    "ENV_TICK_INTERVAL_MS",
    "DEFAULT_CONFIG_FILENAME",
]
