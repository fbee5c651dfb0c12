"""Step runner - drives one task to completion across many resumes.

A task is stepped on an explicit frame stack:
- a callback runs inside a one-step frame that suspends once afterwards
- a steppable is its own frame; a nested iterator it yields is pushed and
  drained depth-first before the parent is asked for its next element
- any other yielded value is a suspend marker and ends the current resume

The first exception raised at any depth aborts the whole chain and is
reported once through ``on_failure``.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tickq.core.logging import StructuredLogger, get_logger
from tickq.task.exceptions import TaskExecutionError, UnrecognizedTaskError
from tickq.task.state import SUSPEND, TaskKind, classify, is_nested_task


class StepOutcome(Enum):
    """Result tag of a single resume."""

    SUSPENDED = "SUSPENDED"  # Tick boundary reached; resume again next tick
    COMPLETED = "COMPLETED"  # Task exhausted normally
    FAILED = "FAILED"  # A step raised; chain aborted


@dataclass(frozen=True)
class StepResult:
    """Outcome of ``StepRunner.resume()``.

    Attributes:
        outcome: What happened during the resume
        value: The suspend marker that ended the resume (SUSPENDED only)
        error: The chain failure (FAILED only)
    """

    outcome: StepOutcome
    value: Any = None
    error: TaskExecutionError | None = None

    @property
    def done(self) -> bool:
        """True for COMPLETED and FAILED."""
        return self.outcome is not StepOutcome.SUSPENDED

    @classmethod
    def suspended(cls, value: Any) -> "StepResult":
        return cls(StepOutcome.SUSPENDED, value=value)

    @classmethod
    def completed(cls) -> "StepResult":
        return cls(StepOutcome.COMPLETED)

    @classmethod
    def failed(cls, error: TaskExecutionError) -> "StepResult":
        return cls(StepOutcome.FAILED, error=error)


def _callback_steps(callback: Callable[[], Any]) -> Iterator[Any]:
    callback()
    yield SUSPEND


def _noop_steps() -> Iterator[Any]:
    yield SUSPEND


class StepRunner:
    """Drives a single task (and everything it yields) to exhaustion.

    Each ``resume()`` runs until the next suspend marker, completion, or
    failure and reports which as a ``StepResult``. Exceptions raised by the
    task never escape ``resume()``; they end the chain and are handed to
    ``on_failure`` exactly once, wrapped in a ``TaskExecutionError`` whose
    ``cause`` is the original exception.
    """

    def __init__(
        self,
        task: Any,
        on_failure: Callable[[TaskExecutionError], None] | None = None,
        *,
        job_id: str | None = None,
        on_unrecognized: Callable[[UnrecognizedTaskError], None] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            task: Callback, iterator, or any other submitted value
            on_failure: Called once with the chain failure, if any
            job_id: Job identifier used in errors and logs
            on_unrecognized: Called when ``task`` is neither callable nor an
                iterator (defaults to a warning on the runner logger)
            logger: Structured logger (defaults to the ``runner`` logger)
        """
        self.job_id = job_id
        self.kind = classify(task)
        self.suspensions = 0
        self._on_failure = on_failure
        base_logger = logger or get_logger("runner")
        self._logger = base_logger.with_context(job_id=job_id) if job_id else base_logger
        self._result: StepResult | None = None

        if self.kind is TaskKind.CALLBACK:
            root: Iterator[Any] = _callback_steps(task)
        elif self.kind is TaskKind.STEPPABLE:
            root = task
        else:
            error = UnrecognizedTaskError(task, job_id=job_id)
            if on_unrecognized is not None:
                on_unrecognized(error)
            else:
                self._logger.warning(str(error), event_type="unrecognized_task")
            root = _noop_steps()

        self._stack: list[Iterator[Any]] = [root]

    @property
    def depth(self) -> int:
        """Current nesting depth (0 once the chain has finished)."""
        return len(self._stack)

    @property
    def done(self) -> bool:
        """True once the chain completed or failed."""
        return self._result is not None

    @property
    def result(self) -> StepResult | None:
        """Terminal result, or None while still running."""
        return self._result

    def resume(self) -> StepResult:
        """Advance the chain to its next suspend point.

        Returns:
            SUSPENDED with the marker, or the terminal COMPLETED/FAILED result.
            Once terminal, further calls return the same result.
        """
        if self._result is not None:
            return self._result

        while self._stack:
            frame = self._stack[-1]
            try:
                value = next(frame)
            except StopIteration:
                self._stack.pop()
                continue
            except Exception as e:
                return self._fail(e)

            if is_nested_task(value):
                self._stack.append(value)
                continue

            self.suspensions += 1
            return StepResult.suspended(value)

        self._result = StepResult.completed()
        return self._result

    def _fail(self, cause: Exception) -> StepResult:
        error = TaskExecutionError(cause, job_id=self.job_id, depth=len(self._stack))
        # Ancestors are abandoned: none of them is asked for another element.
        self._stack.clear()
        self._result = StepResult.failed(error)
        self._logger.debug(
            "Chain aborted",
            event_type="chain_failed",
            depth=error.depth,
            error_type=type(cause).__name__,
        )
        if self._on_failure is not None:
            self._on_failure(error)
        return self._result


def run(
    task: Any,
    on_failure: Callable[[TaskExecutionError], None] | None = None,
    **kwargs: Any,
) -> Iterator[Any]:
    """Run ``task`` as a plain iterator of its suspend markers.

    Each yielded value is one tick boundary; iteration ends when the chain
    completes or fails (``on_failure`` tells the two apart).

    Args:
        task: Callback, iterator, or any other value
        on_failure: Called once with the chain failure, if any
        **kwargs: Passed through to ``StepRunner``
    """
    runner = StepRunner(task, on_failure, **kwargs)
    while True:
        result = runner.resume()
        if result.done:
            return
        yield result.value
