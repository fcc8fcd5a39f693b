"""Periodic triggering of sync passes.

Two kinds of schedule expression are understood:

    @every 5m       fixed interval, Go-style duration ("30s", "1h30m", "90s")
    */5 * * * *     cron expression or macro (@hourly, @daily, ...)
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Optional

from croniter import croniter

from .errors import SyncError

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 5.0

DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> float:
    """Parse a Go-style duration such as ``"1h30m"`` into seconds."""
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    position = 0
    seconds = 0.0
    for match in DURATION_RE.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration '{value}'")
    return seconds


class Schedule(ABC):
    @abstractmethod
    def next_run(self, after: datetime) -> datetime:
        """Return the first trigger time strictly after ``after``."""
        pass


class IntervalSchedule(Schedule):
    def __init__(self, seconds: float):
        if seconds < MIN_INTERVAL_SECONDS:
            logger.warning(
                f"Sync interval {seconds}s is below the minimum, using {MIN_INTERVAL_SECONDS}s"
            )
            seconds = MIN_INTERVAL_SECONDS
        self.seconds = seconds

    def next_run(self, after: datetime) -> datetime:
        return after + timedelta(seconds=self.seconds)

    def __repr__(self) -> str:
        return f"IntervalSchedule({self.seconds}s)"


class CronSchedule(Schedule):
    def __init__(self, expression: str):
        if not croniter.is_valid(expression):
            raise ValueError(f"invalid cron expression '{expression}'")
        self.expression = expression

    def next_run(self, after: datetime) -> datetime:
        # cron fields are wall-clock times in the local timezone
        return croniter(self.expression, after.astimezone()).get_next(datetime)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"


def parse_schedule(expression: str) -> Schedule:
    """Turn a schedule expression into a :class:`Schedule`.

    Raises:
        ValueError: the expression is neither an ``@every`` interval nor valid cron.
    """
    text = expression.strip()
    if text.lower().startswith("@every"):
        seconds = parse_duration(text[len("@every"):])
        if seconds <= 0:
            raise ValueError("interval must be positive")
        return IntervalSchedule(seconds)
    return CronSchedule(text)


class Scheduler:
    """Runs a task on a schedule until stopped.

    Runs are strictly sequential: the next wait only starts once the previous
    run has returned.
    """

    def __init__(
        self,
        schedule: Schedule,
        task: Callable[[], object],
        *,
        stop_event: Optional[threading.Event] = None,
    ):
        self.schedule = schedule
        self.task = task
        self.stop_event = stop_event or threading.Event()

    def stop(self) -> None:
        self.stop_event.set()

    def run_pending(self) -> None:
        """Run the task once, logging instead of raising on failure."""
        try:
            self.task()
        except SyncError as e:
            logger.error(f"Sync failed: {e}")
        except Exception as e:
            logger.error(f"Sync failed unexpectedly: {e}", exc_info=True)

    def run_forever(self) -> None:
        while not self.stop_event.is_set():
            now = datetime.now().astimezone()
            delay = max(0.0, (self.schedule.next_run(now) - now).total_seconds())
            logger.debug(f"Next sync in {delay:.0f}s")
            if self.stop_event.wait(delay):
                break
            logger.info("Running scheduled sync...")
            self.run_pending()
        logger.info("Scheduler stopped")
