"""Shared fixtures for unit and integration tests."""

from __future__ import annotations

import json
from collections.abc import Iterator
from io import StringIO
from typing import Any

import pytest
from rich.console import Console

from tickq.core.error_handling import reset_error_handler
from tickq.core.logging import LogLevel, StructuredLogger, create_logger, reset_loggers
from tickq.core.metrics import MetricsCollector, reset_metrics_collector
from tickq.task.display import StatusDisplay
from tickq.task.scheduler import Scheduler, teardown


@pytest.fixture(autouse=True)
def _reset_globals() -> Iterator[None]:
    """Keep global loggers and the default scheduler from leaking between tests.

    Global loggers bind to the stderr stream that exists when they are
    created, which pytest swaps per test.
    """
    reset_loggers()
    reset_error_handler()
    reset_metrics_collector()
    teardown()
    yield
    teardown()
    reset_loggers()
    reset_error_handler()
    reset_metrics_collector()


@pytest.fixture
def log_stream() -> StringIO:
    """Stream capturing structured log output."""
    return StringIO()


@pytest.fixture
def logger(log_stream: StringIO) -> StructuredLogger:
    """Scheduler logger writing JSON lines to ``log_stream``."""
    return create_logger("scheduler", level=LogLevel.DEBUG, output=log_stream)


@pytest.fixture
def runner_logger(log_stream: StringIO) -> StructuredLogger:
    """Runner logger writing JSON lines to ``log_stream``."""
    return create_logger("runner", level=LogLevel.DEBUG, output=log_stream)


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def scheduler(
    logger: StructuredLogger,
    runner_logger: StructuredLogger,
    metrics: MetricsCollector,
) -> Scheduler:
    """A fresh scheduler with captured logs."""
    return Scheduler(logger=logger, runner_logger=runner_logger, metrics=metrics)


@pytest.fixture
def console() -> Console:
    """Create a console that captures output."""
    return Console(file=StringIO(), force_terminal=True, width=120)


@pytest.fixture
def display(console: Console) -> StatusDisplay:
    """Create a status display with test console."""
    return StatusDisplay(console=console, verbose=False)


def read_log(stream: StringIO) -> list[dict[str, Any]]:
    """Parse every JSON log line written to ``stream``."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


@pytest.fixture
def log_entries(log_stream: StringIO):
    """Callable returning the parsed log entries written so far."""
    return lambda: read_log(log_stream)
