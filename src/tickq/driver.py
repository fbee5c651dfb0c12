"""Host drivers that call ``Scheduler.tick()`` on a fixed period.

The scheduler never ticks itself. A game loop, UI timer or test harness can
call ``tick()`` directly; these drivers cover the common standalone cases.
"""

from __future__ import annotations

import asyncio
import time
from threading import Event

from tickq.core.logging import StructuredLogger, get_logger
from tickq.task.scheduler import Scheduler


class DriverError(Exception):
    """Raised when a driver cannot finish what it was asked to do."""

    pass


def drain(scheduler: Scheduler, max_ticks: int = 10_000) -> int:
    """Tick without sleeping until the scheduler has no pending work.

    Args:
        scheduler: Scheduler to drive
        max_ticks: Upper bound on ticks before giving up

    Returns:
        Number of ticks driven

    Raises:
        DriverError: If work is still pending after ``max_ticks`` ticks.
    """
    ticks = 0
    while scheduler.has_pending_work():
        if ticks >= max_ticks:
            raise DriverError(f"Scheduler still busy after {max_ticks} ticks")
        scheduler.tick()
        ticks += 1
    return ticks


class TickDriver:
    """Fixed-period tick loop.

    Ticks are scheduled on ``time.monotonic()`` deadlines; a tick that
    overruns its period is followed immediately by the next one and the
    schedule is re-anchored rather than bursting to catch up.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval_ms: int = 20,
        max_ticks: int | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            scheduler: Scheduler to drive
            interval_ms: Tick period in milliseconds
            max_ticks: Stop after this many ticks (None = until stopped)
            logger: Structured logger (defaults to the ``driver`` logger)
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        if max_ticks is not None and max_ticks <= 0:
            raise ValueError("max_ticks must be positive")
        self.scheduler = scheduler
        self.interval = interval_ms / 1000
        self.max_ticks = max_ticks
        self.ticks = 0
        self._logger = logger or get_logger("driver")
        self._stop = Event()

    def stop(self) -> None:
        """Ask a running loop to exit after the current tick."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _should_continue(self, until_idle: bool) -> bool:
        if self._stop.is_set():
            return False
        if self.max_ticks is not None and self.ticks >= self.max_ticks:
            return False
        if until_idle and not self.scheduler.has_pending_work():
            return False
        return True

    def _tick(self) -> None:
        try:
            self.scheduler.tick()
        except Exception as e:
            # Task failures never reach here; this is a scheduler or host bug.
            self._logger.critical(
                "Tick raised",
                event_type="driver_error",
                tick=self.ticks,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise
        self.ticks += 1

    def run(self, until_idle: bool = False) -> int:
        """Tick on schedule until stopped, ``max_ticks`` is hit, or (optionally) idle.

        Args:
            until_idle: Return as soon as the scheduler has no pending work

        Returns:
            Number of ticks driven by this call
        """
        start_ticks = self.ticks
        self._stop.clear()
        self._logger.info(
            "Driver started",
            event_type="driver_start",
            interval_ms=self.interval * 1000,
            max_ticks=self.max_ticks,
        )
        deadline = time.monotonic()
        while self._should_continue(until_idle):
            self._tick()
            deadline += self.interval
            delay = deadline - time.monotonic()
            if delay > 0:
                # Returns early if stop() is called from another thread
                self._stop.wait(delay)
            else:
                deadline = time.monotonic()

        driven = self.ticks - start_ticks
        self._logger.info("Driver stopped", event_type="driver_stop", ticks=driven)
        return driven

    def run_until_idle(self) -> int:
        """Tick on schedule until the scheduler has no pending work."""
        return self.run(until_idle=True)

    async def run_async(self, until_idle: bool = False) -> int:
        """Asyncio variant of ``run()``; sleeps with ``asyncio.sleep``.

        Cancelling the surrounding task stops the loop.
        """
        start_ticks = self.ticks
        self._stop.clear()
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while self._should_continue(until_idle):
            self._tick()
            deadline += self.interval
            delay = deadline - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            else:
                deadline = loop.time()
                await asyncio.sleep(0)
        return self.ticks - start_ticks
