"""FIFO job queue.

Jobs start strictly in insertion order. Any thread may add jobs; only the
scheduler's tick removes them.
"""

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from threading import Lock

from tickq.task.state import Job


@dataclass
class QueuedJob:
    """A job with its position in the queue."""

    job: Job
    position: int


@dataclass
class TaskQueue:
    """Unbounded FIFO queue of jobs.

    Thread-safe implementation using a lock for all operations, so
    producers on other threads can enqueue while the tick consumes.

    Attributes:
        _queue: Internal deque of pending jobs
        _lock: Thread lock for safe concurrent access
    """

    _queue: deque[Job] = field(default_factory=deque)
    _lock: Lock = field(default_factory=Lock)

    def add(self, job: Job) -> int:
        """Append a job to the tail of the queue.

        Args:
            job: Job to add (should be in QUEUED state)

        Returns:
            Queue depth after the append (1-based position of the job)
        """
        with self._lock:
            self._queue.append(job)
            return len(self._queue)

    def size(self) -> int:
        """Get number of jobs waiting in queue."""
        with self._lock:
            return len(self._queue)

    def is_empty(self) -> bool:
        """Check if queue is empty."""
        with self._lock:
            return len(self._queue) == 0

    def peek(self) -> Job | None:
        """Get the next job without removing it."""
        with self._lock:
            if self._queue:
                return self._queue[0]
            return None

    def dequeue(self) -> Job | None:
        """Remove and return the next job from the queue.

        Returns:
            Next job, or None if queue is empty
        """
        with self._lock:
            if self._queue:
                return self._queue.popleft()
            return None

    def list_queued(self) -> list[QueuedJob]:
        """List all queued jobs with their positions.

        Returns:
            List of QueuedJob with 1-based positions
        """
        with self._lock:
            return [
                QueuedJob(job=job, position=i + 1)
                for i, job in enumerate(self._queue)
            ]

    def get_by_id(self, job_id: str) -> Job | None:
        """Find a queued job by ID."""
        with self._lock:
            for job in self._queue:
                if job.id == job_id:
                    return job
            return None

    def drain(self) -> list[Job]:
        """Remove and return every queued job, in order."""
        with self._lock:
            jobs = list(self._queue)
            self._queue.clear()
            return jobs

    def __iter__(self) -> Iterator[Job]:
        """Iterate over a snapshot of the queued jobs."""
        with self._lock:
            return iter(list(self._queue))

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
