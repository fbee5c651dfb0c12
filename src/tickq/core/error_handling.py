"""Failure handling for the scheduler.

Task code is untrusted: anything it raises is caught at the scheduler
boundary, logged once with its full cause chain, and translated into the
terminal state of the job it belongs to. Nothing is re-raised to the driver.
"""

from __future__ import annotations

import contextlib
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from tickq.core.logging import StructuredLogger, get_logger

if TYPE_CHECKING:
    from tickq.task.state import JobState


class ErrorSeverity(Enum):
    """How much of the scheduler a failure affects."""

    WARNING = "warning"  # Job carries on as a no-op
    ERROR = "error"  # Job chain aborted
    CRITICAL = "critical"  # Scheduler itself is in trouble


@dataclass
class ErrorContext:
    """Where a failure happened."""

    operation: str  # step, initiate, classify
    component: str  # scheduler, runner, driver
    job_id: str | None = None
    additional_info: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Log fields for this context; unset parts are left out."""
        fields: dict[str, Any] = {"operation": self.operation, "component": self.component}
        if self.job_id is not None:
            fields["job_id"] = self.job_id
        if self.additional_info:
            fields["additional_info"] = self.additional_info
        return fields


def format_cause_chain(error: BaseException) -> str:
    """Format an exception with its traceback and every chained cause."""
    return "".join(traceback.format_exception(error))


_LOG_MESSAGES = {
    ErrorSeverity.WARNING: ("warning", "Warning occurred"),
    ErrorSeverity.ERROR: ("error", "Error occurred"),
    ErrorSeverity.CRITICAL: ("critical", "Critical error occurred"),
}


class GracefulErrorHandler:
    """Logs task and scheduler failures and decides how the job ends.

    ``handle_error`` never raises: the optional ``on_error`` hook is
    isolated so a broken observer cannot take the tick down with it.
    """

    def __init__(
        self,
        logger: StructuredLogger | None = None,
        on_error: Callable[[ErrorContext, Exception], None] | None = None,
    ) -> None:
        """Initialize error handler.

        Args:
            logger: Where failures are written (None = not logged)
            on_error: Observer called after each failure is logged
        """
        self._logger = logger
        self._on_error = on_error

    @property
    def logger(self) -> StructuredLogger | None:
        return self._logger

    def handle_error(
        self,
        error: Exception,
        context: ErrorContext,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
    ) -> JobState:
        """Record a failure and map it to a terminal job state.

        Args:
            error: The failure, usually a ``SchedulerError`` wrapping the task's
                own exception
            context: Where it happened
            severity: WARNING for recoverable oddities, ERROR for aborted chains

        Returns:
            Terminal JobState the affected job should end in
        """
        self._log_error(error, context, severity)

        if self._on_error:
            with contextlib.suppress(Exception):
                self._on_error(context, error)

        return self._determine_state(error, severity)

    def _log_error(
        self,
        error: Exception,
        context: ErrorContext,
        severity: ErrorSeverity,
    ) -> None:
        if self._logger is None:
            return

        fields: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "severity": severity.value,
            **context.to_dict(),
        }
        cause = getattr(error, "cause", None)
        if isinstance(cause, BaseException):
            fields["cause_type"] = type(cause).__name__
        if severity is not ErrorSeverity.WARNING:
            fields["traceback"] = format_cause_chain(error)

        method, message = _LOG_MESSAGES[severity]
        getattr(self._logger, method)(message, **fields)

    def _determine_state(
        self,
        error: Exception,
        severity: ErrorSeverity,
    ) -> JobState:
        # Import here to avoid circular imports
        from tickq.task.exceptions import (
            SchedulerInitiationError,
            TaskExecutionError,
            UnrecognizedTaskError,
        )
        from tickq.task.state import JobState

        # Undefined jobs are skipped, not failed
        if isinstance(error, UnrecognizedTaskError):
            return JobState.COMPLETED
        # Never started
        if isinstance(error, SchedulerInitiationError):
            return JobState.DROPPED
        if isinstance(error, TaskExecutionError):
            return JobState.FAILED
        return JobState.COMPLETED if severity is ErrorSeverity.WARNING else JobState.FAILED


def create_error_handler(
    logger: StructuredLogger | None = None,
    on_error: Callable[[ErrorContext, Exception], None] | None = None,
) -> GracefulErrorHandler:
    """Create an error handler logging to ``logger``."""
    return GracefulErrorHandler(logger=logger, on_error=on_error)


# Process-wide handler
_error_handler: GracefulErrorHandler | None = None


def get_error_handler() -> GracefulErrorHandler:
    """Get the process-wide error handler.

    Created on first use, logging to the ``scheduler`` component logger.
    """
    global _error_handler
    if _error_handler is None:
        _error_handler = GracefulErrorHandler(logger=get_logger("scheduler"))
    return _error_handler


def set_error_handler(handler: GracefulErrorHandler) -> None:
    """Replace the process-wide error handler."""
    global _error_handler
    _error_handler = handler


def reset_error_handler() -> None:
    """Drop the process-wide error handler. Useful for testing."""
    global _error_handler
    _error_handler = None
