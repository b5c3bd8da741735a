# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Fixed-interval scheduling of periodic tasks."""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from .diagnostics import get_diagnostic_logger


class PeriodicTask(ABC):
    """A unit of work run on a fixed tick interval."""

    name: str = "Task"
    interval_seconds: float = 60.0

    @abstractmethod
    def run_once(self) -> None:
        """Perform one tick of work. Exceptions are logged by the scheduler."""
        pass


def run_forever(
    task: PeriodicTask,
    interval: Optional[float] = None,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Run *task* every *interval* seconds until *stop_event* is set.

    Each tick waits the full interval and then invokes ``task.run_once()``; the
    next wait starts only after the invocation returns, so invocations never
    overlap. An exception raised by one invocation is written to the
    diagnostic output and the loop carries on.

    Args:
        task: Task to run
        interval: Seconds between invocations (defaults to ``task.interval_seconds``)
        stop_event: Optional event that ends the loop when set; without one the
            loop only ends with the process
    """
    interval = task.interval_seconds if interval is None else interval
    stop_event = stop_event or threading.Event()
    diagnostics = get_diagnostic_logger()

    while not stop_event.wait(interval):
        try:
            task.run_once()
        except Exception as e:
            diagnostics.exception(f"{task.name} Error: {e!r}", task=task.name)


def start_in_thread(
    task: PeriodicTask,
    interval: Optional[float] = None,
    stop_event: Optional[threading.Event] = None,
) -> threading.Thread:
    """Start :func:`run_forever` for *task* on a daemon thread.

    Returns:
        The started thread
    """
    thread = threading.Thread(
        target=run_forever,
        args=(task, interval, stop_event),
        name=f"periodic-{task.name.lower().replace(' ', '-')}",
        daemon=True,
    )
    thread.start()
    return thread
