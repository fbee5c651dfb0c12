"""Unit tests for the tick-driven scheduler."""

import pytest

from tickq.core.error_handling import create_error_handler, set_error_handler
from tickq.core.metrics import get_metrics_collector
from tickq.task.display import Milestone, StatusDisplay
from tickq.task.exceptions import ReentrantTickError, SchedulerStateError
from tickq.task.queue import TaskQueue
from tickq.task.runner import StepOutcome, StepResult, StepRunner
from tickq.task.scheduler import Scheduler, get_scheduler, teardown
from tickq.task.state import SUSPEND, JobState, RunState


def _markers(count, trace=None, name="task"):
    for i in range(count):
        if trace is not None:
            trace.append(f"{name}:{i}")
        yield SUSPEND


def _events(entries, event_type):
    return [e for e in entries if e.get("event_type") == event_type]


class TestSchedulerIdle:
    """Tests for a scheduler with nothing to do."""

    def test_initial_state(self, scheduler: Scheduler) -> None:
        assert scheduler.state is RunState.IDLE
        assert scheduler.current_job is None
        assert scheduler.tick_count == 0
        assert scheduler.queue_depth == 0
        assert not scheduler.has_pending_work()

    def test_idle_tick_does_nothing(self, scheduler: Scheduler) -> None:
        scheduler.tick()
        assert scheduler.state is RunState.IDLE
        assert scheduler.tick_count == 1
        summary = scheduler.metrics.get_summary()
        assert summary["ticks"] == {"total": 1, "idle": 1, "busy": 0}

    def test_idle_tick_logs_tick_summary(self, scheduler: Scheduler, log_entries) -> None:
        scheduler.tick()
        ticks = _events(log_entries(), "tick")
        assert len(ticks) == 1
        assert ticks[0]["tick"] == 1
        assert ticks[0]["extra"]["run_state"] == "IDLE"

    def test_nothing_runs_without_tick(self, scheduler: Scheduler) -> None:
        calls = []
        scheduler.enqueue(lambda: calls.append(1))
        assert calls == []
        assert scheduler.state is RunState.IDLE

    def test_resume_without_active_job_is_state_error(self, scheduler: Scheduler) -> None:
        with pytest.raises(SchedulerStateError, match="No active job"):
            scheduler._resume_current()


class TestRunnerContract:
    """Tests for runners that break the StepResult contract."""

    def test_failure_without_error_is_state_error(self, logger) -> None:
        class BrokenRunner:
            def __init__(self, task, **kwargs):
                pass

            def resume(self):
                return StepResult(StepOutcome.FAILED)

        scheduler = Scheduler(logger=logger, runner_factory=BrokenRunner)
        scheduler.enqueue(lambda: None)

        with pytest.raises(SchedulerStateError, match="failed without an error"):
            scheduler.tick()


class TestEnqueue:
    """Tests for job submission."""

    def test_enqueue_returns_queued_job(self, scheduler: Scheduler) -> None:
        job = scheduler.enqueue(lambda: None)
        assert job.state is JobState.QUEUED
        assert scheduler.queue_depth == 1
        assert scheduler.has_pending_work()

    def test_enqueue_logs_submission(self, scheduler: Scheduler, log_entries) -> None:
        first = scheduler.enqueue(lambda: None)
        scheduler.enqueue(lambda: None)

        queued = _events(log_entries(), "job_queued")
        assert queued[0]["job_id"] == first.id
        assert queued[0]["message"] == "Queuing job. Has no active work? True. Number of jobs 1"
        assert queued[1]["extra"]["queue_depth"] == 2

    def test_enqueue_while_running_logs_in_flight(
        self, scheduler: Scheduler, log_entries
    ) -> None:
        scheduler.enqueue(_markers(3))
        scheduler.tick()
        scheduler.enqueue(lambda: None)

        queued = _events(log_entries(), "job_queued")
        assert queued[-1]["extra"]["in_flight"] is True
        assert "Has no active work? False" in queued[-1]["message"]

    def test_queued_jobs_snapshot(self, scheduler: Scheduler) -> None:
        jobs = [scheduler.enqueue(lambda: None) for _ in range(3)]
        assert [qj.job for qj in scheduler.queued_jobs()] == jobs
        assert [qj.position for qj in scheduler.queued_jobs()] == [1, 2, 3]

    def test_uses_supplied_queue(self, logger) -> None:
        queue = TaskQueue()
        scheduler = Scheduler(queue, logger=logger)
        scheduler.enqueue(lambda: None)
        assert queue.size() == 1

    def test_log_passthrough(self, scheduler: Scheduler, log_entries) -> None:
        scheduler.log("hello")
        entry = _events(log_entries(), "task_log")[0]
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"


class TestCallbackScheduling:
    """Tests for callback jobs."""

    def test_three_callbacks_one_per_tick(self, scheduler: Scheduler) -> None:
        counter = []
        for _ in range(3):
            scheduler.enqueue(lambda: counter.append(1))

        scheduler.tick()
        assert len(counter) == 1
        scheduler.tick()
        assert len(counter) == 2
        scheduler.tick()
        assert len(counter) == 3
        assert scheduler.has_pending_work()

        scheduler.tick()
        assert not scheduler.has_pending_work()
        assert scheduler.state is RunState.IDLE

    def test_callback_job_lifecycle(self, scheduler: Scheduler) -> None:
        job = scheduler.enqueue(lambda: None)

        scheduler.tick()
        assert job.state is JobState.RUNNING
        assert scheduler.current_job is job
        assert scheduler.state is RunState.RUNNING

        scheduler.tick()
        assert job.state is JobState.COMPLETED
        assert job.ticks == 2
        assert job.suspensions == 1
        assert job.started_at is not None and job.completed_at is not None


class TestSteppableScheduling:
    """Tests for steppable jobs."""

    @pytest.mark.parametrize("markers", [0, 1, 4])
    def test_n_markers_take_n_plus_one_ticks(self, scheduler: Scheduler, markers: int) -> None:
        job = scheduler.enqueue(_markers(markers))
        for _ in range(markers):
            scheduler.tick()
            assert job.state is JobState.RUNNING
        scheduler.tick()
        assert job.state is JobState.COMPLETED
        assert not scheduler.has_pending_work()

    def test_nested_chain(self, scheduler: Scheduler) -> None:
        trace = []

        def parent():
            trace.append("parent:0")
            yield SUSPEND
            yield _markers(1, trace, "child")
            trace.append("parent:1")
            yield SUSPEND

        job = scheduler.enqueue(parent())
        scheduler.tick()
        assert trace == ["parent:0"]
        scheduler.tick()
        assert trace == ["parent:0", "child:0"]
        scheduler.tick()
        assert trace == ["parent:0", "child:0", "parent:1"]
        assert job.state is JobState.RUNNING
        scheduler.tick()
        assert job.state is JobState.COMPLETED
        assert job.suspensions == 3

    def test_completion_chains_into_next_job_same_tick(self, scheduler: Scheduler) -> None:
        trace = []
        first = scheduler.enqueue(_markers(1, trace, "a"))
        second = scheduler.enqueue(_markers(2, trace, "b"))

        scheduler.tick()
        assert trace == ["a:0"]
        scheduler.tick()
        assert trace == ["a:0", "b:0"]
        assert first.state is JobState.COMPLETED
        assert second.state is JobState.RUNNING

    def test_chaining_through_empty_jobs(self, scheduler: Scheduler) -> None:
        """Jobs that complete without suspending all finish in one tick."""
        jobs = [scheduler.enqueue(_markers(0)) for _ in range(5)]
        scheduler.tick()
        assert all(job.state is JobState.COMPLETED for job in jobs)
        assert scheduler.state is RunState.IDLE

    def test_enqueue_from_inside_task(self, scheduler: Scheduler) -> None:
        trace = []

        def spawner():
            scheduler.enqueue(lambda: trace.append("spawned"))
            yield SUSPEND
            trace.append("spawner:done")

        scheduler.enqueue(spawner())
        scheduler.enqueue(lambda: trace.append("second"))

        for _ in range(5):
            scheduler.tick()

        assert trace == ["spawner:done", "second", "spawned"]

    def test_state_transitions_logged(self, scheduler: Scheduler, log_entries) -> None:
        scheduler.enqueue(_markers(1))
        scheduler.tick()
        scheduler.tick()

        transitions = _events(log_entries(), "state_transition")
        assert [(t["extra"]["from_state"], t["extra"]["to_state"]) for t in transitions] == [
            ("IDLE", "RUNNING"),
            ("RUNNING", "IDLE"),
        ]
        assert transitions[1]["extra"]["reason"] == "queue empty"

    def test_job_end_logged(self, scheduler: Scheduler, log_entries) -> None:
        job = scheduler.enqueue(_markers(1))
        scheduler.tick()
        scheduler.tick()

        end = _events(log_entries(), "job_end")[0]
        assert end["job_id"] == job.id
        assert end["extra"]["final_state"] == "COMPLETED"
        assert end["extra"]["ticks"] == 2


class TestUnrecognizedJobs:
    """Tests for values that are neither callable nor iterators."""

    def test_unrecognized_logged_and_completes(self, scheduler: Scheduler, log_entries) -> None:
        job = scheduler.enqueue(42)

        scheduler.tick()
        warnings = [e for e in log_entries() if e["level"] == "WARNING"]
        assert len(warnings) == 1
        assert warnings[0]["job_id"] == job.id
        assert warnings[0]["extra"]["error_type"] == "UnrecognizedTaskError"
        assert "Undefined job" in warnings[0]["extra"]["error_message"]
        assert scheduler.has_pending_work()

        scheduler.tick()
        assert job.state is JobState.COMPLETED
        assert not scheduler.has_pending_work()

    def test_unrecognized_warning_has_no_traceback(self, scheduler: Scheduler, log_entries) -> None:
        scheduler.enqueue(None)
        scheduler.tick()
        warning = next(e for e in log_entries() if e["level"] == "WARNING")
        assert "traceback" not in warning["extra"]


class TestFailures:
    """Tests for failing jobs."""

    def test_failure_marks_job_failed_and_goes_idle(
        self, scheduler: Scheduler, log_entries
    ) -> None:
        def broken():
            yield SUSPEND
            raise ValueError("bad step")

        job = scheduler.enqueue(broken())
        scheduler.tick()
        scheduler.tick()

        assert job.state is JobState.FAILED
        assert "ValueError: bad step" in job.error_message
        assert scheduler.state is RunState.IDLE
        assert scheduler.current_job is None

        error = next(e for e in log_entries() if e["level"] == "ERROR")
        assert error["job_id"] == job.id
        assert error["extra"]["error_type"] == "TaskExecutionError"
        assert error["extra"]["cause_type"] == "ValueError"
        assert error["extra"]["additional_info"] == {"depth": 1}
        assert "ValueError: bad step" in error["extra"]["traceback"]

    def test_failure_never_escapes_tick(self, scheduler: Scheduler) -> None:
        scheduler.enqueue(lambda: 1 / 0)
        scheduler.tick()
        assert scheduler.state is RunState.IDLE

    def test_next_job_starts_on_following_tick(self, scheduler: Scheduler) -> None:
        calls = []

        def broken():
            raise RuntimeError("boom")
            yield  # pragma: no cover

        failed = scheduler.enqueue(broken())
        follower = scheduler.enqueue(lambda: calls.append("follower"))

        scheduler.tick()
        assert failed.state is JobState.FAILED
        assert follower.state is JobState.QUEUED
        assert calls == []

        scheduler.tick()
        assert calls == ["follower"]

    def test_chained_job_failure_stops_the_tick(self, scheduler: Scheduler) -> None:
        def broken():
            raise RuntimeError("boom")
            yield  # pragma: no cover

        first = scheduler.enqueue(_markers(1))
        second = scheduler.enqueue(broken())
        third = scheduler.enqueue(lambda: None)

        scheduler.tick()
        scheduler.tick()

        assert first.state is JobState.COMPLETED
        assert second.state is JobState.FAILED
        assert third.state is JobState.QUEUED
        assert scheduler.state is RunState.IDLE

    def test_nested_failure_depth(self, scheduler: Scheduler, log_entries) -> None:
        def child():
            yield SUSPEND
            raise KeyError("k")

        def parent():
            yield child()
            yield SUSPEND

        job = scheduler.enqueue(parent())
        scheduler.tick()
        scheduler.tick()

        assert job.state is JobState.FAILED
        error = next(e for e in log_entries() if e["level"] == "ERROR")
        assert error["extra"]["additional_info"] == {"depth": 2}

    def test_failure_counted_in_metrics(self, scheduler: Scheduler) -> None:
        scheduler.enqueue(lambda: 1 / 0)
        scheduler.enqueue(lambda: None)
        for _ in range(4):
            scheduler.tick()

        by_state = scheduler.metrics.get_summary()["jobs"]["by_state"]
        assert by_state["FAILED"] == 1
        assert by_state["COMPLETED"] == 1


class TestInitiationFailures:
    """Tests for jobs the scheduler cannot start."""

    @staticmethod
    def _factory_failing_first(failures: int = 1):
        remaining = [failures]

        def factory(task, **kwargs):
            if remaining[0] > 0:
                remaining[0] -= 1
                raise RuntimeError("cannot build runner")
            return StepRunner(task, **kwargs)

        return factory

    def test_job_dropped(self, logger, log_entries) -> None:
        scheduler = Scheduler(logger=logger, runner_factory=self._factory_failing_first())
        job = scheduler.enqueue(lambda: None)

        scheduler.tick()

        assert job.state is JobState.DROPPED
        assert "cannot build runner" in job.error_message
        assert scheduler.state is RunState.IDLE
        error = next(e for e in log_entries() if e["level"] == "ERROR")
        assert error["extra"]["error_type"] == "SchedulerInitiationError"
        assert error["extra"]["operation"] == "initiate"

    def test_next_job_runs_after_drop(self, logger) -> None:
        scheduler = Scheduler(logger=logger, runner_factory=self._factory_failing_first())
        calls = []
        dropped = scheduler.enqueue(lambda: calls.append("dropped"))
        scheduler.enqueue(lambda: calls.append("next"))

        scheduler.tick()
        assert calls == []
        scheduler.tick()

        assert dropped.state is JobState.DROPPED
        assert calls == ["next"]

    def test_chained_drop_goes_idle(self, logger) -> None:
        def factory(task, **kwargs):
            if task == "fail-here":
                raise RuntimeError("bad payload")
            return StepRunner(task, **kwargs)

        scheduler = Scheduler(logger=logger, runner_factory=factory)
        first = scheduler.enqueue(_markers(0))
        second = scheduler.enqueue("fail-here")
        third = scheduler.enqueue(lambda: None)

        scheduler.tick()

        assert first.state is JobState.COMPLETED
        assert second.state is JobState.DROPPED
        assert third.state is JobState.QUEUED
        assert scheduler.state is RunState.IDLE

    def test_chained_drop_logs_idle_transition(self, logger, log_entries) -> None:
        def factory(task, **kwargs):
            if task == "fail-here":
                raise RuntimeError("bad payload")
            return StepRunner(task, **kwargs)

        scheduler = Scheduler(logger=logger, runner_factory=factory)
        scheduler.enqueue(_markers(0))
        scheduler.enqueue("fail-here")

        scheduler.tick()

        reasons = [e["extra"]["reason"] for e in _events(log_entries(), "state_transition")]
        assert reasons == ["job started", "initiation failed"]

    def test_drop_counted_in_metrics(self, logger) -> None:
        scheduler = Scheduler(logger=logger, runner_factory=self._factory_failing_first())
        scheduler.enqueue(lambda: None)
        scheduler.tick()
        assert scheduler.metrics.get_summary()["jobs"]["by_state"]["DROPPED"] == 1


class TestReentrantTick:
    """Tests for tick() called from inside a task."""

    def test_reentrant_tick_fails_the_job(self, scheduler: Scheduler) -> None:
        job = scheduler.enqueue(lambda: scheduler.tick())

        scheduler.tick()

        assert job.state is JobState.FAILED
        assert "ReentrantTickError" in job.error_message
        assert scheduler.tick_count == 1

    def test_scheduler_usable_after_reentrant_tick(self, scheduler: Scheduler) -> None:
        calls = []
        scheduler.enqueue(lambda: scheduler.tick())
        scheduler.enqueue(lambda: calls.append(1))

        scheduler.tick()
        scheduler.tick()

        assert calls == [1]

    def test_reentrant_error_type(self) -> None:
        assert issubclass(ReentrantTickError, SchedulerStateError)


class TestAbandon:
    """Tests for abandoning work."""

    def test_abandon_running_and_queued(self, scheduler: Scheduler, log_entries) -> None:
        running = scheduler.enqueue(_markers(5))
        waiting = [scheduler.enqueue(lambda: None) for _ in range(2)]
        scheduler.tick()

        count = scheduler.abandon()

        assert count == 3
        assert running.state is JobState.ABANDONED
        assert all(job.state is JobState.ABANDONED for job in waiting)
        assert scheduler.state is RunState.IDLE
        assert not scheduler.has_pending_work()

        teardown_entry = _events(log_entries(), "teardown")[0]
        assert teardown_entry["level"] == "WARNING"
        assert teardown_entry["extra"]["job_ids"][0] == running.id

    def test_abandon_when_idle(self, scheduler: Scheduler) -> None:
        assert scheduler.abandon() == 0

    def test_abandoned_task_not_resumed(self, scheduler: Scheduler) -> None:
        trace = []
        scheduler.enqueue(_markers(3, trace))
        scheduler.tick()
        scheduler.abandon()
        scheduler.tick()
        assert trace == ["task:0"]

    def test_abandon_from_inside_task(self, scheduler: Scheduler) -> None:
        def quitter():
            scheduler.abandon()
            yield SUSPEND

        job = scheduler.enqueue(quitter())
        later = scheduler.enqueue(lambda: None)

        scheduler.tick()

        assert job.state is JobState.ABANDONED
        assert later.state is JobState.ABANDONED
        assert scheduler.state is RunState.IDLE

    def test_abandon_counted_in_metrics(self, scheduler: Scheduler) -> None:
        scheduler.enqueue(lambda: None)
        scheduler.enqueue(lambda: None)
        scheduler.abandon()
        assert scheduler.metrics.get_summary()["jobs"]["by_state"]["ABANDONED"] == 2


class TestDisplayNotifications:
    """Tests for milestones sent to the status display."""

    def test_milestone_sequence(self, logger, display: StatusDisplay) -> None:
        scheduler = Scheduler(logger=logger, display=display)
        scheduler.enqueue(lambda: None)
        scheduler.tick()
        scheduler.tick()

        assert [m.milestone for m in display.messages] == [
            Milestone.JOB_QUEUED,
            Milestone.JOB_STARTED,
            Milestone.JOB_COMPLETED,
            Milestone.SCHEDULER_IDLE,
        ]

    def test_failure_and_unrecognized_milestones(self, logger, display: StatusDisplay) -> None:
        scheduler = Scheduler(logger=logger, display=display)
        scheduler.enqueue(42)
        scheduler.enqueue(lambda: 1 / 0)
        for _ in range(3):
            scheduler.tick()

        milestones = [m.milestone for m in display.messages]
        assert Milestone.UNRECOGNIZED_JOB in milestones
        assert Milestone.JOB_FAILED in milestones

    def test_raising_display_callback_does_not_wedge(
        self, logger, display: StatusDisplay
    ) -> None:
        def on_message(msg):
            if msg.milestone is Milestone.JOB_FAILED:
                raise RuntimeError("display broke")

        display.add_callback(on_message)
        scheduler = Scheduler(logger=logger, display=display)
        bad = scheduler.enqueue(lambda: 1 / 0)
        good = scheduler.enqueue(lambda: None)

        for _ in range(3):
            scheduler.tick()

        assert bad.state is JobState.FAILED
        assert good.state is JobState.COMPLETED
        assert scheduler.state is RunState.IDLE
        assert not scheduler.has_pending_work()

    def test_chained_drop_clears_display_job(
        self, logger, display: StatusDisplay, console
    ) -> None:
        def factory(task, **kwargs):
            if task == "fail-here":
                raise RuntimeError("bad payload")
            return StepRunner(task, **kwargs)

        scheduler = Scheduler(logger=logger, display=display, runner_factory=factory)
        scheduler.enqueue(_markers(0))
        scheduler.enqueue("fail-here")

        scheduler.tick()

        dropped = [line for line in console.file.getvalue().splitlines() if "Job dropped" in line]
        assert len(dropped) == 1
        assert "_markers" not in dropped[0]

    def test_abandon_milestone(self, logger, display: StatusDisplay) -> None:
        scheduler = Scheduler(logger=logger, display=display)
        scheduler.enqueue(lambda: None)
        scheduler.abandon()
        assert display.messages[-1].milestone is Milestone.JOB_ABANDONED
        assert display.messages[-1].detail == "1 job(s)"


class TestDefaultScheduler:
    """Tests for the process-wide scheduler."""

    def test_get_scheduler_is_singleton(self) -> None:
        assert get_scheduler() is get_scheduler()

    def test_uses_global_metrics(self) -> None:
        assert get_scheduler().metrics is get_metrics_collector()

    def test_uses_global_error_handler(self) -> None:
        seen = []
        set_error_handler(create_error_handler(on_error=lambda ctx, err: seen.append(ctx.job_id)))
        scheduler = get_scheduler()
        job = scheduler.enqueue(lambda: 1 / 0)
        scheduler.tick()
        assert seen == [job.id]

    def test_teardown_creates_fresh_instance(self) -> None:
        first = get_scheduler()
        teardown()
        assert get_scheduler() is not first

    def test_teardown_abandons_pending_work(self) -> None:
        scheduler = get_scheduler()
        job = scheduler.enqueue(lambda: None)
        teardown()
        assert job.state is JobState.ABANDONED

    def test_teardown_without_instance(self) -> None:
        teardown()
        teardown()
