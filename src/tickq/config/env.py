"""Environment variable loading for deployment configuration."""

import os
from dataclasses import dataclass, replace
from pathlib import Path

from tickq.config.schema import (
    ConfigValidationError,
    DriverConfig,
    LoggingConfig,
    SchedulerConfig,
    load_config,
)
from tickq.core.logging import LogLevel

# Environment variable names
ENV_CONFIG_PATH = "TICKQ_CONFIG"
ENV_LOG_LEVEL = "TICKQ_LOG_LEVEL"
ENV_LOG_JSON = "TICKQ_LOG_JSON"
ENV_TICK_INTERVAL_MS = "TICKQ_TICK_INTERVAL_MS"

# Default values
DEFAULT_CONFIG_FILENAME = "tickq.yaml"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass
class EnvConfig:
    """Environment-based configuration. None means "not set"."""

    config_path: Path
    log_level: LogLevel | None = None
    log_json: bool | None = None
    tick_interval_ms: int | None = None


def _parse_bool(raw: str, name: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigValidationError(f"{name} must be a boolean, got '{raw}'")


def _parse_positive_int(raw: str, name: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got '{raw}'") from None
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")
    return value


def get_config_path() -> Path:
    """Get the configuration file path from the environment or the default.

    Returns:
        Path to tickq.yaml (not necessarily existing).
    """
    raw = os.environ.get(ENV_CONFIG_PATH)
    if raw:
        return Path(raw).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def load_env_config() -> EnvConfig:
    """Load all environment-based configuration.

    Returns:
        EnvConfig with any overrides found.

    Raises:
        ConfigValidationError: If a variable is set to an invalid value.
    """
    config = EnvConfig(config_path=get_config_path())

    level = os.environ.get(ENV_LOG_LEVEL)
    if level:
        try:
            config.log_level = LogLevel.from_name(level)
        except ValueError as e:
            raise ConfigValidationError(f"{ENV_LOG_LEVEL}: {e}") from e

    log_json = os.environ.get(ENV_LOG_JSON)
    if log_json:
        config.log_json = _parse_bool(log_json, ENV_LOG_JSON)

    interval = os.environ.get(ENV_TICK_INTERVAL_MS)
    if interval:
        config.tick_interval_ms = _parse_positive_int(interval, ENV_TICK_INTERVAL_MS)

    return config


def apply_env_overrides(config: SchedulerConfig, env: EnvConfig) -> SchedulerConfig:
    """Return a copy of ``config`` with environment overrides applied.

    Environment values win over file values.
    """
    driver: DriverConfig = config.driver
    if env.tick_interval_ms is not None:
        driver = replace(driver, tick_interval_ms=env.tick_interval_ms)

    logging_config: LoggingConfig = config.logging
    if env.log_level is not None:
        logging_config = replace(logging_config, level=env.log_level)
    if env.log_json is not None:
        logging_config = replace(logging_config, json_format=env.log_json)

    return SchedulerConfig(driver=driver, logging=logging_config)


def resolve_config(path: Path | None = None) -> SchedulerConfig:
    """Load the effective configuration.

    Reads ``path`` (or the environment/default path) if it exists, falls back
    to defaults otherwise, then applies environment overrides.

    Raises:
        ConfigError: If the file or an environment value is invalid.
    """
    env = load_env_config()
    config_path = path if path is not None else env.config_path
    if config_path.exists():
        config = load_config(config_path)
    else:
        config = SchedulerConfig()
    return apply_env_overrides(config, env)
