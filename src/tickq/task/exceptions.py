"""Exception hierarchy for the scheduler and step runner."""

from typing import Any


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    pass


class TaskExecutionError(SchedulerError):
    """Raised when a callback or a steppable fails while being stepped.

    Attributes:
        job_id: Job whose chain failed (None when run outside a scheduler)
        cause: The original exception raised at the failing frame
        depth: Nesting depth of the failing frame (1 = the submitted task)
    """

    def __init__(
        self,
        cause: BaseException,
        job_id: str | None = None,
        depth: int = 1,
    ) -> None:
        self.job_id = job_id
        self.cause = cause
        self.depth = depth
        where = f"job {job_id}" if job_id else "task"
        super().__init__(
            f"{where} failed at depth {depth}: {type(cause).__name__}: {cause}"
        )
        self.__cause__ = cause


class UnrecognizedTaskError(SchedulerError):
    """Raised (and logged) when a submitted value is neither callable nor an iterator."""

    def __init__(self, value: Any, job_id: str | None = None) -> None:
        self.value = value
        self.job_id = job_id
        super().__init__(f"Undefined job: {type(value).__name__} is not a callback or steppable")


class SchedulerInitiationError(SchedulerError):
    """Raised when the scheduler cannot begin running a job."""

    def __init__(self, job_id: str, cause: BaseException) -> None:
        self.job_id = job_id
        self.cause = cause
        super().__init__(f"Failed to start job {job_id}: {cause}")
        self.__cause__ = cause


class SchedulerStateError(SchedulerError):
    """Raised when an operation would violate the single-active-job invariant."""

    pass


class ReentrantTickError(SchedulerStateError):
    """Raised when tick() is called while a tick is already in progress."""

    def __init__(self) -> None:
        super().__init__("tick() called from inside a running task")
