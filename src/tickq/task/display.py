"""Rich status display for scheduler activity.

Prints job milestones as they happen and renders status panels and queue tables.
"""

from __future__ import annotations

import contextlib
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from tickq.task.state import Job, JobState, RunState

if TYPE_CHECKING:
    from tickq.task.scheduler import Scheduler


class Milestone(Enum):
    """Scheduler events reported to the display."""

    JOB_QUEUED = "Job queued"
    JOB_STARTED = "Job started"
    JOB_COMPLETED = "Job completed"
    JOB_FAILED = "Job failed"
    JOB_DROPPED = "Job dropped"
    JOB_ABANDONED = "Job abandoned"
    UNRECOGNIZED_JOB = "Undefined job"
    SCHEDULER_IDLE = "No active work"


@dataclass
class StatusMessage:
    """A status message with timestamp."""

    milestone: Milestone
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    detail: str | None = None


STATE_STYLES: dict[JobState, Style] = {
    JobState.QUEUED: Style(color="yellow"),
    JobState.RUNNING: Style(color="blue", bold=True),
    JobState.COMPLETED: Style(color="green", bold=True),
    JobState.FAILED: Style(color="red", bold=True),
    JobState.DROPPED: Style(color="red"),
    JobState.ABANDONED: Style(color="yellow", dim=True),
}

MILESTONE_ICONS: dict[Milestone, str] = {
    Milestone.JOB_QUEUED: "📋",
    Milestone.JOB_STARTED: "🚀",
    Milestone.JOB_COMPLETED: "✅",
    Milestone.JOB_FAILED: "❌",
    Milestone.JOB_DROPPED: "⚠️",
    Milestone.JOB_ABANDONED: "⏹️",
    Milestone.UNRECOGNIZED_JOB: "❓",
    Milestone.SCHEDULER_IDLE: "💤",
}


class StatusDisplay:
    """Rich console display for scheduler status.

    Provides:
    - Milestone messages as they occur
    - Status panel for the scheduler and its active job
    - Queue table
    - Optional verbose mode with timestamps and details
    """

    def __init__(
        self,
        console: Console | None = None,
        verbose: bool = False,
        max_messages: int = 500,
    ) -> None:
        """Initialize the status display.

        Args:
            console: Rich console (uses default if None)
            verbose: Whether to show detailed output
            max_messages: Number of recent milestones kept in ``messages``
        """
        self.console = console or Console()
        self.verbose = verbose
        self._messages: deque[StatusMessage] = deque(maxlen=max_messages)
        self._current_job: Job | None = None
        self._callbacks: list[Callable[[StatusMessage], None]] = []

    @property
    def messages(self) -> list[StatusMessage]:
        return list(self._messages)

    def add_callback(self, callback: Callable[[StatusMessage], None]) -> None:
        """Add a callback to be called on each status update."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[StatusMessage], None]) -> None:
        """Remove a status callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def set_job(self, job: Job | None) -> None:
        """Set the job currently being displayed."""
        self._current_job = job

    def emit(
        self,
        milestone: Milestone,
        detail: str | None = None,
    ) -> None:
        """Emit a status milestone.

        Args:
            milestone: The milestone event
            detail: Optional additional detail (shown in verbose mode)
        """
        msg = StatusMessage(
            milestone=milestone,
            message=milestone.value,
            detail=detail,
        )
        self._messages.append(msg)

        # Observer errors are ignored
        for callback in self._callbacks:
            with contextlib.suppress(Exception):
                callback(msg)

        self._print_milestone(msg)

    def _print_milestone(self, msg: StatusMessage) -> None:
        """Print a milestone message to the console."""
        icon = MILESTONE_ICONS.get(msg.milestone, "•")
        text = f"{icon} {msg.message}"
        if self._current_job is not None and msg.milestone is not Milestone.SCHEDULER_IDLE:
            text += f" [dim]{self._current_job.label}[/dim]"

        if self.verbose:
            ts = msg.timestamp.strftime("%H:%M:%S")
            text = f"[dim]{ts}[/dim] {text}"

        self.console.print(text)
        if self.verbose and msg.detail:
            self.console.print(f"  [dim]{msg.detail}[/dim]")

    def show_job_status(self, job: Job) -> None:
        """Display a job status panel.

        Args:
            job: Job to display
        """
        style = STATE_STYLES.get(job.state, Style())

        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Key", style="bold")
        table.add_column("Value")

        table.add_row("ID", job.id)
        table.add_row("Task", job.label)
        table.add_row("Kind", job.kind.value)
        table.add_row("State", Text(job.state.value, style=style))
        if job.ticks > 0:
            table.add_row("Ticks", str(job.ticks))
        if job.suspensions > 0:
            table.add_row("Suspensions", str(job.suspensions))
        if job.error_message:
            table.add_row("Error", Text(job.error_message[:80], style="red"))

        self.console.print(Panel(table, title="Job", border_style=style))

    def show_queue(self, jobs: list[tuple[int, Job]]) -> None:
        """Display queued jobs as a table.

        Args:
            jobs: (position, job) pairs
        """
        table = Table(title="Queue")
        table.add_column("#", justify="right")
        table.add_column("ID")
        table.add_column("Kind")
        table.add_column("Task")

        for position, job in jobs:
            table.add_row(str(position), job.id, job.kind.value, job.label)

        self.console.print(table)

    def show_status(self, scheduler: Scheduler) -> None:
        """Display the scheduler's run state, active job, and queue."""
        state = scheduler.state
        color = "blue" if state is RunState.RUNNING else "dim"
        self.console.print(
            f"[bold]Scheduler:[/bold] [{color}]{state.value}[/{color}] "
            f"(tick {scheduler.tick_count}, {scheduler.queue_depth} queued)"
        )
        current = scheduler.current_job
        if current is not None:
            self.show_job_status(current)
        queued = scheduler.queued_jobs()
        if queued:
            self.show_queue([(qj.position, qj.job) for qj in queued])

    def show_summary(self, summary: dict[str, Any]) -> None:
        """Display a metrics summary (see ``MetricsCollector.get_summary``)."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Key", style="bold")
        table.add_column("Value")

        ticks = summary.get("ticks", {})
        jobs = summary.get("jobs", {})
        table.add_row("Ticks", f"{ticks.get('total', 0)} ({ticks.get('idle', 0)} idle)")
        for state, count in jobs.get("by_state", {}).items():
            if count:
                table.add_row(state.title(), str(count))
        table.add_row("Avg ticks/job", str(jobs.get("average_ticks", 0.0)))

        self.console.print(Panel(table, title="Summary"))


def create_status_display(
    console: Console | None = None,
    verbose: bool = False,
) -> StatusDisplay:
    """Create a status display.

    Args:
        console: Rich console (creates new one if None)
        verbose: Whether to show detailed output

    Returns:
        Configured StatusDisplay
    """
    return StatusDisplay(console=console, verbose=verbose)
