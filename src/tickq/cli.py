"""CLI entry point for tickq.

Provides commands for:
- Running a demonstration workload through a tick driver (tickq demo)
- Showing the effective configuration (tickq config)
"""

import sys
from collections.abc import Iterator
from pathlib import Path

import click
import yaml
from rich.console import Console

from tickq import __version__
from tickq.config import ConfigError, SchedulerConfig, resolve_config
from tickq.core.logging import configure_logging
from tickq.driver import TickDriver
from tickq.task import (
    SUSPEND,
    JobState,
    Scheduler,
    create_status_display,
)

# Global console for Rich output
console = Console()


def _load(config_path: Path | None) -> SchedulerConfig:
    try:
        return resolve_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


def _blink(times: int) -> Iterator[object]:
    for _ in range(times):
        yield SUSPEND


def _countdown(scheduler: Scheduler, start: int) -> Iterator[object]:
    for remaining in range(start, 0, -1):
        scheduler.log(f"countdown: {remaining}")
        yield SUSPEND
        if remaining == 2:
            # Drained completely before the countdown resumes
            yield _blink(2)
    scheduler.log("countdown: liftoff")


def _flaky(scheduler: Scheduler) -> Iterator[object]:
    def fetch() -> Iterator[object]:
        yield SUSPEND
        raise ConnectionError("upstream unavailable")

    scheduler.log("flaky: fetching")
    yield fetch()
    scheduler.log("flaky: never reached")


def build_demo_workload(scheduler: Scheduler, fail: bool = False) -> None:
    """Queue the demonstration jobs on ``scheduler``."""
    scheduler.enqueue(lambda: scheduler.log("hello from a callback"))
    scheduler.enqueue(_countdown(scheduler, 3))
    scheduler.enqueue(42)
    if fail:
        scheduler.enqueue(_flaky(scheduler))
    scheduler.enqueue(lambda: scheduler.log("goodbye from a callback"))


@click.group()
@click.version_option(version=__version__, prog_name="tickq")
def main() -> None:
    """tickq - a cooperative, tick-driven task scheduler."""
    pass


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to tickq.yaml",
)
@click.option("--ticks", type=click.IntRange(min=1), help="Stop after this many ticks")
@click.option("--interval-ms", type=click.IntRange(min=1), help="Tick period in milliseconds")
@click.option("--fail", is_flag=True, help="Include a job whose sub-task fails")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output")
def demo(
    config_path: Path | None,
    ticks: int | None,
    interval_ms: int | None,
    fail: bool,
    verbose: bool,
) -> None:
    """Run a demonstration workload until the queue drains.

    Examples:
        tickq demo
        tickq demo --fail -v
        tickq demo --interval-ms 100 --ticks 5
    """
    config = _load(config_path)

    configure_logging(level=config.logging.level, json_format=config.logging.json_format)

    display = create_status_display(console=console, verbose=verbose)
    scheduler = Scheduler(display=display)
    driver = TickDriver(
        scheduler,
        interval_ms=interval_ms or config.driver.tick_interval_ms,
        max_ticks=ticks or config.driver.max_ticks,
    )

    build_demo_workload(scheduler, fail=fail)

    try:
        driver.run_until_idle()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, abandoning remaining work...[/yellow]")
        scheduler.abandon()
        sys.exit(130)

    display.show_summary(scheduler.metrics.get_summary())
    if scheduler.has_pending_work():
        display.show_status(scheduler)

    failed = scheduler.metrics.get_summary()["jobs"]["by_state"][JobState.FAILED.value]
    sys.exit(1 if failed else 0)


@main.command(name="config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to tickq.yaml",
)
def show_config(config_path: Path | None) -> None:
    """Show the effective configuration (file + environment)."""
    config = _load(config_path)
    data = {
        "driver": {
            "tick_interval_ms": config.driver.tick_interval_ms,
            "max_ticks": config.driver.max_ticks,
        },
        "logging": {
            "level": config.logging.level.name,
            "json_format": config.logging.json_format,
        },
    }
    console.print(yaml.safe_dump(data, sort_keys=False).rstrip(), markup=False, highlight=False)


if __name__ == "__main__":
    main()
