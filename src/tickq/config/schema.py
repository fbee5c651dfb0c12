"""YAML schema validation for tickq.yaml configuration files."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tickq.core.logging import LogLevel


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigParseError(ConfigError):
    """Error parsing YAML configuration."""

    pass


class ConfigValidationError(ConfigError):
    """Error validating configuration schema."""

    pass


DEFAULT_TICK_INTERVAL_MS = 20


@dataclass
class DriverConfig:
    """Tick driver configuration."""

    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    max_ticks: int | None = None  # None = run until stopped


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    json_format: bool = True


@dataclass
class SchedulerConfig:
    """Complete tickq.yaml configuration."""

    driver: DriverConfig = field(default_factory=DriverConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_yaml(content: str) -> dict[str, Any]:
    """Parse YAML content into a dictionary.

    Args:
        content: Raw YAML string.

    Returns:
        Parsed dictionary.

    Raises:
        ConfigParseError: If YAML parsing fails.
    """
    try:
        result = yaml.safe_load(content)
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise ConfigParseError("Configuration must be a YAML mapping")
        return result
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}") from e


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigValidationError(f"{name} must be a mapping")
    return section


def _positive_int(value: Any, name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigValidationError(f"{name} must be a positive integer")
    return value


def _validate_driver(data: dict[str, Any]) -> DriverConfig:
    """Validate the driver section of configuration.

    Args:
        data: Raw configuration dictionary.

    Returns:
        Validated DriverConfig.

    Raises:
        ConfigValidationError: If driver validation fails.
    """
    driver = _section(data, "driver")
    config = DriverConfig()

    if "tick_interval_ms" in driver:
        config.tick_interval_ms = _positive_int(
            driver["tick_interval_ms"], "driver.tick_interval_ms"
        )

    if driver.get("max_ticks") is not None:
        config.max_ticks = _positive_int(driver["max_ticks"], "driver.max_ticks")

    return config


def _validate_logging(data: dict[str, Any]) -> LoggingConfig:
    """Validate the logging section of configuration.

    Args:
        data: Raw configuration dictionary.

    Returns:
        Validated LoggingConfig.

    Raises:
        ConfigValidationError: If logging validation fails.
    """
    section = _section(data, "logging")
    config = LoggingConfig()

    if "level" in section:
        level = section["level"]
        if not isinstance(level, str):
            raise ConfigValidationError("logging.level must be a string")
        try:
            config.level = LogLevel.from_name(level)
        except ValueError as e:
            raise ConfigValidationError(f"logging.level: {e}") from e

    if "json_format" in section:
        json_format = section["json_format"]
        if not isinstance(json_format, bool):
            raise ConfigValidationError("logging.json_format must be a boolean")
        config.json_format = json_format

    return config


def parse_config(content: str) -> SchedulerConfig:
    """Parse and validate tickq.yaml content.

    Every section is optional; an empty document yields the defaults.

    Args:
        content: Raw YAML configuration string.

    Returns:
        Validated SchedulerConfig object.

    Raises:
        ConfigParseError: If YAML parsing fails.
        ConfigValidationError: If schema validation fails.
    """
    data = _parse_yaml(content)

    return SchedulerConfig(
        driver=_validate_driver(data),
        logging=_validate_logging(data),
    )


def load_config(path: Path) -> SchedulerConfig:
    """Load and validate tickq.yaml configuration from a file.

    Args:
        path: Path to tickq.yaml file.

    Returns:
        Validated SchedulerConfig object.

    Raises:
        ConfigParseError: If file reading or YAML parsing fails.
        ConfigValidationError: If schema validation fails.
    """
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigParseError(f"Failed to read configuration file: {e}") from e

    return parse_config(content)
