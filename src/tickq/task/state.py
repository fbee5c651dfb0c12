"""Task representation: classification, job records and scheduler states."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class _Suspend:
    """Sentinel yielded by steppable tasks to pause until the next tick."""

    _instance: "_Suspend | None" = None

    def __new__(cls) -> "_Suspend":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SUSPEND"


# Any non-iterator value works as a suspend marker; this one reads best.
SUSPEND = _Suspend()


class TaskKind(Enum):
    """Variants a submitted value can be classified into."""

    CALLBACK = "CALLBACK"  # Zero-arg callable, runs once within a single step
    STEPPABLE = "STEPPABLE"  # Iterator resumed one element per step
    UNRECOGNIZED = "UNRECOGNIZED"  # Neither; logged and treated as a no-op


class RunState(Enum):
    """Scheduler run states."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"


class JobState(Enum):
    """Lifecycle states of a queued job."""

    QUEUED = "QUEUED"  # Waiting for prior jobs to finish
    RUNNING = "RUNNING"  # Being stepped by the scheduler
    COMPLETED = "COMPLETED"  # Exhausted normally
    FAILED = "FAILED"  # A step raised; chain aborted
    DROPPED = "DROPPED"  # Scheduler could not start it
    ABANDONED = "ABANDONED"  # Scheduler torn down before it finished


TERMINAL_STATES = frozenset({
    JobState.COMPLETED,
    JobState.FAILED,
    JobState.DROPPED,
    JobState.ABANDONED,
})


def is_terminal_state(state: JobState) -> bool:
    """Check if a state is terminal (no further transitions possible)."""
    return state in TERMINAL_STATES


def classify(value: Any) -> TaskKind:
    """Classify a submitted or yielded value.

    Iterators are checked first, so an object that is both iterable-by-next
    and callable is treated as steppable.
    """
    if isinstance(value, Iterator):
        return TaskKind.STEPPABLE
    if callable(value):
        return TaskKind.CALLBACK
    return TaskKind.UNRECOGNIZED


def is_nested_task(value: Any) -> bool:
    """True if a yielded value is a sub-task rather than a suspend marker."""
    return isinstance(value, Iterator)


def describe(value: Any) -> str:
    """Short human-readable label for a task payload."""
    name = getattr(value, "__qualname__", None) or getattr(value, "__name__", None)
    if name:
        return str(name)
    return type(value).__name__


@dataclass
class Job:
    """A submitted task together with its bookkeeping.

    Attributes:
        id: Unique job identifier (auto-generated)
        payload: The submitted callback, iterator, or unrecognized value
        kind: Classification of the payload at submission time
        state: Current job state
        created_at: UTC timestamp when the job was enqueued
        started_at: UTC timestamp when the job started running
        completed_at: UTC timestamp when the job reached a terminal state
        ticks: Number of ticks that resumed this job
        suspensions: Number of suspend points this job passed
        error_message: Error description (set on FAILED/DROPPED)
    """

    id: str
    payload: Any
    kind: TaskKind
    state: JobState = JobState.QUEUED
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    ticks: int = 0
    suspensions: int = 0
    error_message: str | None = None

    @property
    def label(self) -> str:
        """Human-readable label of the payload."""
        return describe(self.payload)

    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return is_terminal_state(self.state)

    def mark_started(self) -> None:
        self.state = JobState.RUNNING
        self.started_at = datetime.now(UTC)

    def mark_finished(self, state: JobState, error_message: str | None = None) -> None:
        self.state = state
        self.completed_at = datetime.now(UTC)
        if error_message is not None:
            self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary for serialization."""
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "started_at": (
                self.started_at.isoformat() if self.started_at else None
            ),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "ticks": self.ticks,
            "suspensions": self.suspensions,
            "error_message": self.error_message,
        }


def generate_job_id() -> str:
    """Generate a unique job ID.

    Format: job_{YYYYMMDD}_{HHMMSS}_{random6chars}
    Uses UTC timezone.
    """
    import random
    import string

    now = datetime.now(UTC)
    timestamp = now.strftime("%Y%m%d_%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"job_{timestamp}_{suffix}"


def create_job(payload: Any) -> Job:
    """Wrap a submitted value in a new QUEUED job."""
    return Job(
        id=generate_job_id(),
        payload=payload,
        kind=classify(payload),
    )
