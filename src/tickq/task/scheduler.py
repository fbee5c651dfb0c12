"""Scheduler - FIFO submission queue driven by an external tick.

State machine, evaluated once per ``tick()``:
- IDLE with queued work: dequeue the head job, start a StepRunner on it and
  resume it within the same tick (-> RUNNING)
- IDLE with an empty queue: nothing happens
- RUNNING: resume the active runner; when it completes, chain straight into
  the next queued job in the same tick, or go IDLE if the queue is empty;
  when it fails, log the failure and go IDLE (the next job waits for the
  next tick)

Only one job is ever active. Nothing runs unless someone calls ``tick()``.
"""

from collections.abc import Callable
from functools import partial
from typing import Any

from tickq.core.error_handling import (
    ErrorContext,
    ErrorSeverity,
    GracefulErrorHandler,
    create_error_handler,
    get_error_handler,
)
from tickq.core.logging import StructuredLogger, get_logger
from tickq.core.metrics import MetricsCollector, Timer, get_metrics_collector
from tickq.task.display import Milestone, StatusDisplay
from tickq.task.exceptions import (
    ReentrantTickError,
    SchedulerInitiationError,
    SchedulerStateError,
    TaskExecutionError,
    UnrecognizedTaskError,
)
from tickq.task.queue import QueuedJob, TaskQueue
from tickq.task.runner import StepOutcome, StepRunner
from tickq.task.state import Job, JobState, RunState, create_job


class Scheduler:
    """Cooperative single-consumer task scheduler.

    Producers call ``enqueue()``; a host driver calls ``tick()`` once per
    scheduling period. Callbacks run once and then yield a tick; steppable
    tasks run until they yield a suspend marker. Task failures are logged
    and never raised out of ``tick()``.
    """

    def __init__(
        self,
        queue: TaskQueue | None = None,
        *,
        logger: StructuredLogger | None = None,
        error_handler: GracefulErrorHandler | None = None,
        metrics: MetricsCollector | None = None,
        display: StatusDisplay | None = None,
        runner_factory: Callable[..., StepRunner] = StepRunner,
        runner_logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            queue: Job queue (a fresh one if None)
            logger: Structured logger (defaults to the ``scheduler`` logger)
            error_handler: Failure handler (defaults to one logging to ``logger``)
            metrics: Metrics collector (a private one if None)
            display: Optional status display notified of milestones
            runner_factory: Builds the StepRunner for each started job
            runner_logger: Logger handed to each StepRunner
        """
        self._queue = queue if queue is not None else TaskQueue()
        self._logger = logger if logger is not None else get_logger("scheduler")
        self._error_handler = (
            error_handler
            if error_handler is not None
            else create_error_handler(logger=self._logger)
        )
        self._metrics = metrics if metrics is not None else MetricsCollector()
        self._display = display
        self._runner_factory = runner_factory
        self._runner_logger = runner_logger

        # Run state: the active runner and its job, both None when idle
        self._runner: StepRunner | None = None
        self._current: Job | None = None

        self._ticking = False
        self._tick_count = 0

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        """RUNNING while a job is in flight, IDLE otherwise."""
        return RunState.RUNNING if self._runner is not None else RunState.IDLE

    @property
    def current_job(self) -> Job | None:
        """The job currently in flight."""
        return self._current

    @property
    def tick_count(self) -> int:
        """Number of ticks driven so far."""
        return self._tick_count

    @property
    def queue_depth(self) -> int:
        """Number of jobs waiting (not counting the active one)."""
        return self._queue.size()

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    def queued_jobs(self) -> list[QueuedJob]:
        """Snapshot of waiting jobs with their 1-based positions."""
        return self._queue.list_queued()

    def has_pending_work(self) -> bool:
        """True if a job is in flight or any job is queued.

        This is a point-in-time snapshot; a producer may enqueue right after.
        """
        return self._runner is not None or not self._queue.is_empty()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def enqueue(self, task: Any) -> Job:
        """Submit a callback or steppable task.

        Any value is accepted; values that are neither callable nor an
        iterator are logged as undefined jobs when their turn comes.

        Args:
            task: Zero-arg callable, iterator/generator, or anything else

        Returns:
            The queued Job record
        """
        job = create_job(task)
        depth = self._queue.add(job)
        self._logger.log_job_queued(job.id, depth, in_flight=self._runner is not None)
        self._emit(Milestone.JOB_QUEUED, f"Position: {depth}")
        return job

    def log(self, message: str) -> None:
        """Diagnostic passthrough for task code."""
        self._logger.info(message, event_type="task_log")

    # ------------------------------------------------------------------
    # Driver loop
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Advance the scheduler by one tick.

        Raises:
            ReentrantTickError: If called while a tick is already running
                (i.e. from inside a task; that task's chain then fails).
        """
        if self._ticking:
            raise ReentrantTickError()

        self._ticking = True
        self._tick_count += 1
        try:
            with Timer() as timer:
                busy = self._advance()
        finally:
            self._ticking = False

        self._metrics.record_tick(idle=not busy)
        self._logger.log_tick(
            self._tick_count,
            self.state.value,
            self._queue.size(),
            duration_ms=round(timer.duration_ms, 3),
        )

    def _advance(self) -> bool:
        """Run one tick of the state machine. Returns False if the tick was idle."""
        if self._runner is None:
            job = self._queue.dequeue()
            if job is None:
                return False
            self._logger.debug(
                "No active work, creating work",
                event_type="work_start",
                queue_depth=self._queue.size(),
            )
            if not self._start(job, chained=False):
                return True

        # One iteration per job: each either suspends, fails, or completes
        # and hands the tick on to the next queued job.
        while self._runner is not None:
            outcome = self._resume_current()
            if outcome is not StepOutcome.COMPLETED:
                break

            next_job = self._queue.dequeue()
            if next_job is None:
                self._go_idle("queue empty")
                self._emit(Milestone.SCHEDULER_IDLE)
                break
            self._start(next_job, chained=True)

        return True

    def _start(self, job: Job, chained: bool) -> bool:
        """Begin stepping ``job``. Returns False if it had to be dropped."""
        if self._runner is not None:
            running = self._current.id if self._current else "?"
            raise SchedulerStateError(
                f"Cannot start job {job.id} while job {running} is running"
            )

        try:
            runner = self._runner_factory(
                job.payload,
                job_id=job.id,
                on_unrecognized=partial(self._handle_unrecognized, job),
                logger=self._runner_logger,
            )
        except Exception as e:
            error = SchedulerInitiationError(job.id, e)
            final_state = self._error_handler.handle_error(
                error,
                ErrorContext(operation="initiate", component="scheduler", job_id=job.id),
            )
            job.mark_finished(final_state, str(error))
            self._metrics.end_job(job.id, final_state.value)
            if chained:
                self._go_idle("initiation failed")
            self._emit(Milestone.JOB_DROPPED, str(error))
            return False

        self._runner = runner
        self._current = job
        job.mark_started()
        self._metrics.start_job(job.id)
        self._logger.log_job_start(job.id, job.kind.value, job.label, self._queue.size())
        if not chained:
            self._logger.log_state_transition(
                RunState.IDLE.value, RunState.RUNNING.value, "job started"
            )
        if self._display is not None:
            self._display.set_job(job)
        self._emit(Milestone.JOB_STARTED)
        return True

    def _resume_current(self) -> StepOutcome:
        job = self._current
        runner = self._runner
        if job is None or runner is None:
            raise SchedulerStateError("No active job to resume")

        with Timer() as timer:
            result = runner.resume()

        suspended = result.outcome is StepOutcome.SUSPENDED
        job.ticks += 1
        if suspended:
            job.suspensions += 1
        self._metrics.record_resume(job.id, timer.duration_ms, suspended=suspended)

        if self._current is not job:
            # Abandoned from inside the task; nothing left to resume.
            return StepOutcome.SUSPENDED

        if result.outcome is StepOutcome.COMPLETED:
            self._finish(job, JobState.COMPLETED)
            self._emit(Milestone.JOB_COMPLETED)
        elif result.outcome is StepOutcome.FAILED:
            if result.error is None:
                raise SchedulerStateError(f"Job {job.id} failed without an error")
            self._handle_failure(job, result.error)
        return result.outcome

    def _finish(self, job: Job, final_state: JobState, error_message: str | None = None) -> None:
        """Record a terminal state for the active job and release the run state."""
        job.mark_finished(final_state, error_message)
        self._metrics.end_job(job.id, final_state.value)
        duration_ms = None
        if job.started_at and job.completed_at:
            duration_ms = round((job.completed_at - job.started_at).total_seconds() * 1000, 3)
        self._logger.log_job_end(job.id, final_state.value, job.ticks, duration_ms)
        self._runner = None
        self._current = None

    def _go_idle(self, reason: str) -> None:
        self._logger.log_state_transition(RunState.RUNNING.value, RunState.IDLE.value, reason)
        if self._display is not None:
            self._display.set_job(None)

    def _handle_failure(self, job: Job, error: TaskExecutionError) -> None:
        """Log a chain failure and force the scheduler back to IDLE.

        Other queued jobs stay queued; the next one starts on the next tick.
        """
        final_state = self._error_handler.handle_error(
            error,
            ErrorContext(
                operation="step",
                component="scheduler",
                job_id=job.id,
                additional_info={"depth": error.depth},
            ),
        )
        self._finish(job, final_state, str(error))
        self._emit(Milestone.JOB_FAILED, str(error))
        self._go_idle("job failed")

    def _handle_unrecognized(self, job: Job, error: UnrecognizedTaskError) -> None:
        self._error_handler.handle_error(
            error,
            ErrorContext(operation="classify", component="scheduler", job_id=job.id),
            severity=ErrorSeverity.WARNING,
        )
        self._emit(Milestone.UNRECOGNIZED_JOB, str(error))

    def _emit(self, milestone: Milestone, detail: str | None = None) -> None:
        if self._display is not None:
            self._display.emit(milestone, detail)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def abandon(self) -> int:
        """Drop the in-flight chain and every queued job without running them.

        The active task's continuation is simply released, not closed.

        Returns:
            Number of jobs abandoned
        """
        abandoned = self._queue.drain()
        if self._current is not None:
            abandoned.insert(0, self._current)
            self._runner = None
            self._current = None
            self._go_idle("teardown")

        for job in abandoned:
            job.mark_finished(JobState.ABANDONED)
            self._metrics.end_job(job.id, JobState.ABANDONED.value)

        if abandoned:
            self._logger.warning(
                f"Abandoned {len(abandoned)} job(s)",
                event_type="teardown",
                job_ids=[job.id for job in abandoned],
            )
            self._emit(Milestone.JOB_ABANDONED, f"{len(abandoned)} job(s)")
        return len(abandoned)


# Default process-wide scheduler
_scheduler: Scheduler | None = None


def get_scheduler() -> Scheduler:
    """Get the default scheduler instance.

    Creates the scheduler on first call.
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = Scheduler(
            error_handler=get_error_handler(),
            metrics=get_metrics_collector(),
        )
    return _scheduler


def teardown() -> None:
    """Release the default scheduler, abandoning any in-flight or queued work."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.abandon()
    _scheduler = None
