"""Task representation, step runner, queue and scheduler.

This module provides:
- Task classification (callback / steppable / unrecognized) and job records
- Step runner that drives one task and its nested sub-tasks depth-first
- FIFO job queue safe for concurrent producers
- Tick-driven scheduler with a single active job
- Rich status display
"""

# Task representation
# Status display
from tickq.task.display import (
    MILESTONE_ICONS,
    STATE_STYLES,
    Milestone,
    StatusDisplay,
    StatusMessage,
    create_status_display,
)

# Errors
from tickq.task.exceptions import (
    ReentrantTickError,
    SchedulerError,
    SchedulerInitiationError,
    SchedulerStateError,
    TaskExecutionError,
    UnrecognizedTaskError,
)

# Job queue
from tickq.task.queue import QueuedJob, TaskQueue

# Step runner
from tickq.task.runner import StepOutcome, StepResult, StepRunner, run

# Scheduler
from tickq.task.scheduler import Scheduler, get_scheduler, teardown
from tickq.task.state import (
    SUSPEND,
    TERMINAL_STATES,
    Job,
    JobState,
    RunState,
    TaskKind,
    classify,
    create_job,
    generate_job_id,
    is_nested_task,
    is_terminal_state,
)

__all__ = [
    # State
    "SUSPEND",
    "TaskKind",
    "RunState",
    "JobState",
    "Job",
    "TERMINAL_STATES",
    "classify",
    "is_nested_task",
    "is_terminal_state",
    "generate_job_id",
    "create_job",
    # Errors
    "SchedulerError",
    "TaskExecutionError",
    "UnrecognizedTaskError",
    "SchedulerInitiationError",
    "SchedulerStateError",
    "ReentrantTickError",
    # Runner
    "StepOutcome",
    "StepResult",
    "StepRunner",
    "run",
    # Queue
    "TaskQueue",
    "QueuedJob",
    # Scheduler
    "Scheduler",
    "get_scheduler",
    "teardown",
    # Display
    "Milestone",
    "StatusMessage",
    "StatusDisplay",
    "STATE_STYLES",
    "MILESTONE_ICONS",
    "create_status_display",
]
