"""tickq - a cooperative, single-threaded task scheduler driven by an external tick."""

__version__ = "0.1.0"

from tickq.task import (
    SUSPEND,
    Job,
    JobState,
    RunState,
    Scheduler,
    StepOutcome,
    StepResult,
    StepRunner,
    TaskKind,
    classify,
    get_scheduler,
    teardown,
)

__all__ = [
    "__version__",
    "SUSPEND",
    "Job",
    "JobState",
    "RunState",
    "Scheduler",
    "StepOutcome",
    "StepResult",
    "StepRunner",
    "TaskKind",
    "classify",
    "get_scheduler",
    "teardown",
]
