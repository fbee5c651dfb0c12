"""Structured logging for tickq.

Every record is one line on the output stream, JSON by default. Components
(scheduler, runner, driver) each get their own logger from a small registry
so a host can retarget or silence them together with ``configure_logging``.
"""

from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO


class LogLevel(Enum):
    """Log levels."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Look up a level by case-insensitive name.

        Raises:
            ValueError: If the name is not a known level.
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(level.name for level in cls)
            raise ValueError(f"Unknown log level '{name}' (expected one of {valid})") from None


@dataclass
class LogEntry:
    """One scheduler log record.

    ``job_id``, ``tick`` and ``duration_ms`` are promoted to top-level keys
    so records can be filtered per job or per tick; everything else lands in
    ``extra``.
    """

    timestamp: str
    level: str
    message: str
    component: str
    event_type: str | None = None
    job_id: str | None = None
    tick: int | None = None
    duration_ms: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        # Unset fields and an empty extra are omitted
        data = {key: value for key, value in asdict(self).items() if value not in (None, {})}
        return json.dumps(data, default=str)

    def to_human_readable(self) -> str:
        tags = [self.timestamp, self.level, self.component, self.event_type, self.job_id]
        prefix = " ".join(f"[{tag}]" for tag in tags if tag)
        return f"{prefix} {self.message}"


class StructuredLogger:
    """Line-per-record logger for one scheduler component.

    Bound context (see ``with_context``) is merged into every record the
    logger writes; the specialized ``log_*`` methods give scheduler events
    a fixed ``event_type`` and field layout.
    """

    def __init__(
        self,
        component: str,
        level: LogLevel = LogLevel.INFO,
        output: TextIO | None = None,
        json_format: bool = True,
    ) -> None:
        """Initialize logger.

        Args:
            component: Component name (scheduler, runner, driver)
            level: Minimum log level
            output: Output stream (defaults to stderr)
            json_format: Whether to use JSON format
        """
        self.component = component
        self.level = level
        self.output = output or sys.stderr
        self.json_format = json_format
        self._context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        """Bind fields to every later record from this logger."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        self._context.clear()

    def with_context(self, **kwargs: Any) -> StructuredLogger:
        """Return a sibling logger sharing this one's stream with extra bound fields.

        The original logger is left untouched.
        """
        bound = StructuredLogger(self.component, self.level, self.output, self.json_format)
        bound._context = {**self._context, **kwargs}
        return bound

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level.value >= self.level.value

    def _log(
        self,
        level: LogLevel,
        message: str,
        event_type: str | None = None,
        **fields: Any,
    ) -> None:
        if not self.is_enabled_for(level):
            return

        extra = {**self._context, **fields}
        entry = LogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            level=level.name,
            message=message,
            component=self.component,
            event_type=event_type,
            job_id=extra.pop("job_id", None),
            tick=extra.pop("tick", None),
            duration_ms=extra.pop("duration_ms", None),
            extra=extra,
        )

        line = entry.to_json() if self.json_format else entry.to_human_readable()
        self.output.write(line + "\n")
        self.output.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, **kwargs)

    # Scheduler events

    def log_state_transition(
        self,
        from_state: str,
        to_state: str,
        reason: str = "",
    ) -> None:
        """Log a run state transition.

        Args:
            from_state: Run state being left (IDLE/RUNNING)
            to_state: Run state being entered
            reason: Why the scheduler moved
        """
        self._log(
            LogLevel.INFO,
            f"State transition: {from_state} -> {to_state}",
            event_type="state_transition",
            from_state=from_state,
            to_state=to_state,
            reason=reason,
        )

    def log_job_queued(
        self,
        job_id: str,
        queue_depth: int,
        in_flight: bool,
    ) -> None:
        """Log a job submission.

        Args:
            job_id: Job identifier
            queue_depth: Number of jobs waiting after the submission
            in_flight: Whether a job is currently running
        """
        self._log(
            LogLevel.INFO,
            f"Queuing job. Has no active work? {not in_flight}. Number of jobs {queue_depth}",
            event_type="job_queued",
            job_id=job_id,
            queue_depth=queue_depth,
            in_flight=in_flight,
        )

    def log_job_start(
        self,
        job_id: str,
        kind: str,
        label: str,
        queue_depth: int,
    ) -> None:
        """Log job start.

        Args:
            job_id: Job identifier
            kind: Task kind of the payload
            label: Payload label (truncated)
            queue_depth: Jobs still waiting behind this one
        """
        self._log(
            LogLevel.INFO,
            f"Job started: {job_id}",
            event_type="job_start",
            job_id=job_id,
            kind=kind,
            label=label[:200] if label else "",
            queue_depth=queue_depth,
        )

    def log_job_end(
        self,
        job_id: str,
        final_state: str,
        ticks: int,
        duration_ms: float | None = None,
    ) -> None:
        """Log job completion.

        Args:
            job_id: Job identifier
            final_state: Final job state
            ticks: Number of ticks the job was resumed on
            duration_ms: Wall-clock duration in milliseconds
        """
        self._log(
            LogLevel.INFO,
            f"Job finished: {job_id} -> {final_state}",
            event_type="job_end",
            job_id=job_id,
            final_state=final_state,
            ticks=ticks,
            duration_ms=duration_ms,
        )

    def log_tick(
        self,
        tick: int,
        run_state: str,
        queue_depth: int,
        duration_ms: float | None = None,
    ) -> None:
        """Log a tick summary at DEBUG level.

        Args:
            tick: Tick counter
            run_state: Run state after the tick
            queue_depth: Jobs waiting after the tick
            duration_ms: Time spent inside the tick
        """
        self._log(
            LogLevel.DEBUG,
            f"Tick {tick}: {run_state}",
            event_type="tick",
            tick=tick,
            run_state=run_state,
            queue_depth=queue_depth,
            duration_ms=duration_ms,
        )


def create_logger(
    component: str,
    level: LogLevel = LogLevel.INFO,
    json_format: bool = True,
    output: TextIO | None = None,
) -> StructuredLogger:
    """Create a standalone logger (not registered in the component registry)."""
    return StructuredLogger(
        component=component,
        level=level,
        json_format=json_format,
        output=output,
    )


# Component registry and the settings new registry loggers start with
_loggers: dict[str, StructuredLogger] = {}
_defaults: dict[str, Any] = {}


def get_logger(component: str) -> StructuredLogger:
    """Get the registry logger for a component, creating it on first use."""
    logger = _loggers.get(component)
    if logger is None:
        logger = _loggers[component] = create_logger(component, **_defaults)
    return logger


def reset_loggers() -> None:
    """Forget every registry logger and configured default. Useful for testing."""
    _loggers.clear()
    _defaults.clear()


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    json_format: bool = True,
    output: TextIO | None = None,
) -> None:
    """Apply settings to every registry logger, existing and future.

    Args:
        level: Minimum log level
        json_format: Whether to use JSON format
        output: Output stream (None keeps each logger's stream, stderr for new ones)
    """
    _defaults.update(level=level, json_format=json_format)
    if output is not None:
        _defaults["output"] = output
    for logger in _loggers.values():
        logger.level = level
        logger.json_format = json_format
        if output is not None:
            logger.output = output
