"""Metrics collection for tickq.

Tracks how the scheduler spends its ticks:
- ticks driven, split into busy and idle
- jobs by terminal state
- ticks and suspensions per job
- time spent inside each resume
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Any


# Latency samples kept for percentiles; count, total, min and max cover every sample
MAX_LATENCY_SAMPLES = 1000


def _percentile(ordered: list[float], fraction: float) -> float:
    if not ordered:
        return 0.0
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


@dataclass
class LatencyStats:
    """Running latency distribution, in milliseconds."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0
    values: deque[float] = field(default_factory=lambda: deque(maxlen=MAX_LATENCY_SAMPLES))

    def record(self, duration_ms: float) -> None:
        self.values.append(duration_ms)
        self.count += 1
        self.total_ms += duration_ms
        if duration_ms < self.min_ms:
            self.min_ms = duration_ms
        if duration_ms > self.max_ms:
            self.max_ms = duration_ms

    @property
    def avg_ms(self) -> float:
        if not self.count:
            return 0.0
        return self.total_ms / self.count

    @property
    def p50_ms(self) -> float:
        return _percentile(sorted(self.values), 0.5)

    @property
    def p95_ms(self) -> float:
        return _percentile(sorted(self.values), 0.95)

    def to_dict(self) -> dict[str, Any]:
        ordered = sorted(self.values)
        return {
            "count": self.count,
            "total_ms": round(self.total_ms, 2),
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.count else 0.0,
            "max_ms": round(self.max_ms, 2),
            "p50_ms": round(_percentile(ordered, 0.5), 2),
            "p95_ms": round(_percentile(ordered, 0.95), 2),
        }

    def reset(self) -> None:
        self.count = 0
        self.total_ms = 0.0
        self.min_ms = float("inf")
        self.max_ms = 0.0
        self.values.clear()


@dataclass
class JobMetrics:
    """Tick accounting for one job, from start to terminal state."""

    job_id: str
    started_at: datetime
    completed_at: datetime | None = None
    final_state: str | None = None
    ticks: int = 0
    suspensions: int = 0

    @property
    def duration_ms(self) -> float | None:
        """Wall-clock time from start to terminal state (None while running)."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        duration = self.duration_ms
        return {
            "job_id": self.job_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "final_state": self.final_state,
            "ticks": self.ticks,
            "suspensions": self.suspensions,
            "duration_ms": None if duration is None else round(duration, 2),
        }


class MetricsCollector:
    """Collects and aggregates scheduler metrics.

    Producers may enqueue from other threads while the tick runs, so every
    method takes the collector's lock.
    """

    # Terminal job states to track
    DEFAULT_STATES = ("COMPLETED", "FAILED", "DROPPED", "ABANDONED")

    def __init__(self, max_history: int = 100) -> None:
        """Initialize metrics collector.

        Args:
            max_history: Number of finished jobs kept for inspection
        """
        self._lock = Lock()
        self._ticks = 0
        self._idle_ticks = 0
        self._jobs_by_state: dict[str, int] = dict.fromkeys(self.DEFAULT_STATES, 0)
        self._job_ticks_total = 0
        self._jobs_measured = 0
        self._resume_latency = LatencyStats()
        self._current: dict[str, JobMetrics] = {}
        self._completed: list[JobMetrics] = []
        self._max_history = max_history

    def record_tick(self, idle: bool) -> None:
        """Record one driven tick.

        Args:
            idle: True if the tick found no work
        """
        with self._lock:
            self._ticks += 1
            if idle:
                self._idle_ticks += 1

    def start_job(self, job_id: str) -> None:
        with self._lock:
            self._current[job_id] = JobMetrics(job_id=job_id, started_at=datetime.now(UTC))

    def record_resume(
        self,
        job_id: str,
        duration_ms: float,
        suspended: bool,
    ) -> None:
        """Record one resume of a running job (one per job per tick).

        Args:
            job_id: Job identifier
            duration_ms: Time spent inside the resume
            suspended: Whether the resume ended at a suspend point
        """
        with self._lock:
            self._resume_latency.record(duration_ms)
            metrics = self._current.get(job_id)
            if metrics is None:
                return
            metrics.ticks += 1
            if suspended:
                metrics.suspensions += 1

    def end_job(self, job_id: str, final_state: str) -> None:
        """Record that a job reached a terminal state.

        Jobs that never started (dropped, or abandoned while queued) are
        still counted by state.

        Args:
            job_id: Job identifier
            final_state: Terminal JobState value
        """
        with self._lock:
            if final_state in self._jobs_by_state:
                self._jobs_by_state[final_state] += 1
            metrics = self._current.pop(job_id, None)
            if metrics is None:
                return
            metrics.completed_at = datetime.now(UTC)
            metrics.final_state = final_state
            self._job_ticks_total += metrics.ticks
            self._jobs_measured += 1
            self._completed.append(metrics)
            if len(self._completed) > self._max_history:
                self._completed.pop(0)

    def get_job_metrics(self, job_id: str) -> JobMetrics | None:
        """Get metrics for a running or recently finished job."""
        with self._lock:
            if job_id in self._current:
                return self._current[job_id]
            return next((m for m in reversed(self._completed) if m.job_id == job_id), None)

    def get_summary(self) -> dict[str, Any]:
        """Aggregate ticks, job outcomes and resume latency into one dictionary."""
        with self._lock:
            finished = sum(self._jobs_by_state.values())
            failed = self._jobs_by_state["FAILED"]
            return {
                "ticks": {
                    "total": self._ticks,
                    "idle": self._idle_ticks,
                    "busy": self._ticks - self._idle_ticks,
                },
                "jobs": {
                    "finished": finished,
                    "by_state": dict(self._jobs_by_state),
                    "failure_rate": round(failed / finished, 4) if finished else 0.0,
                    "running": len(self._current),
                    "average_ticks": (
                        round(self._job_ticks_total / self._jobs_measured, 2)
                        if self._jobs_measured
                        else 0.0
                    ),
                },
                "latency": {
                    "resume": self._resume_latency.to_dict(),
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._ticks = 0
            self._idle_ticks = 0
            self._jobs_by_state = dict.fromkeys(self.DEFAULT_STATES, 0)
            self._job_ticks_total = 0
            self._jobs_measured = 0
            self._resume_latency.reset()
            self._current.clear()
            self._completed.clear()


# Process-wide collector shared by the default scheduler
_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics_collector() -> None:
    """Clear and drop the process-wide collector. Useful for testing."""
    global _metrics_collector
    if _metrics_collector is not None:
        _metrics_collector.reset()
    _metrics_collector = None


class Timer:
    """Measures the wall-clock time of a ``with`` block.

    Example:
        with Timer() as timer:
            runner.resume()
        metrics.record_resume(job_id, timer.duration_ms, suspended=True)
    """

    def __init__(self) -> None:
        self._started = 0.0
        self._elapsed = 0.0

    def __enter__(self) -> Timer:
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._elapsed = time.perf_counter() - self._started

    @property
    def duration_ms(self) -> float:
        return self._elapsed * 1000
