"""Core infrastructure for tickq.

Provides:
- Structured logging
- Metrics collection
- Error handling with graceful degradation
"""

from tickq.core.error_handling import (
    ErrorContext,
    ErrorSeverity,
    GracefulErrorHandler,
    create_error_handler,
    format_cause_chain,
    get_error_handler,
    reset_error_handler,
    set_error_handler,
)
from tickq.core.logging import (
    LogEntry,
    LogLevel,
    StructuredLogger,
    configure_logging,
    create_logger,
    get_logger,
    reset_loggers,
)
from tickq.core.metrics import (
    JobMetrics,
    LatencyStats,
    MetricsCollector,
    Timer,
    get_metrics_collector,
    reset_metrics_collector,
)

__all__ = [
    # Logging
    "LogLevel",
    "LogEntry",
    "StructuredLogger",
    "create_logger",
    "get_logger",
    "reset_loggers",
    "configure_logging",
    # Metrics
    "LatencyStats",
    "JobMetrics",
    "MetricsCollector",
    "Timer",
    "get_metrics_collector",
    "reset_metrics_collector",
    # Error handling
    "ErrorSeverity",
    "ErrorContext",
    "GracefulErrorHandler",
    "create_error_handler",
    "format_cause_chain",
    "get_error_handler",
    "set_error_handler",
    "reset_error_handler",
]
