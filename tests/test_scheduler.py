"""Unit tests for schedule parsing and the Scheduler loop."""

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterator

import pytest

from traefik_pihole_sync.errors import TransportError
from traefik_pihole_sync.scheduler import (
    CronSchedule,
    IntervalSchedule,
    Schedule,
    Scheduler,
    parse_duration,
    parse_schedule,
)

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def set_local_timezone(monkeypatch: pytest.MonkeyPatch) -> Iterator[Callable[[str], None]]:
    """Switch the process timezone for one test."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    def set_timezone(name: str) -> None:
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield set_timezone
    monkeypatch.undo()
    time.tzset()


@pytest.mark.parametrize(
    "value,seconds",
    [("30s", 30), ("5m", 300), ("1h30m", 5400), ("1.5h", 5400), ("500ms", 0.5)],
)
def test_parse_duration(value: str, seconds: float) -> None:
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", ["", "5", "5 minutes", "m5", "5m junk"])
def test_parse_duration_invalid(value: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_parse_every_schedule() -> None:
    schedule = parse_schedule("@every 5m")

    assert isinstance(schedule, IntervalSchedule)
    assert schedule.next_run(START) == datetime(2024, 1, 1, 12, 5, 0, tzinfo=timezone.utc)


def test_every_schedule_has_minimum_interval() -> None:
    schedule = parse_schedule("@every 1s")

    assert isinstance(schedule, IntervalSchedule)
    assert schedule.seconds == 5.0


def test_parse_cron_schedule(set_local_timezone: Callable[[str], None]) -> None:
    set_local_timezone("UTC")
    schedule = parse_schedule("*/10 * * * *")

    assert isinstance(schedule, CronSchedule)
    assert schedule.next_run(START) == datetime(2024, 1, 1, 12, 10, 0, tzinfo=timezone.utc)


def test_parse_cron_macro(set_local_timezone: Callable[[str], None]) -> None:
    set_local_timezone("UTC")
    schedule = parse_schedule("@hourly")

    assert schedule.next_run(START) == datetime(2024, 1, 1, 13, 0, 0, tzinfo=timezone.utc)


def test_cron_fields_are_local_wall_clock(set_local_timezone: Callable[[str], None]) -> None:
    set_local_timezone("EST5EDT")
    schedule = parse_schedule("0 3 * * *")

    next_run = schedule.next_run(START)

    assert next_run.astimezone().hour == 3
    assert next_run == datetime(2024, 1, 2, 8, 0, 0, tzinfo=timezone.utc)

@pytest.mark.parametrize("expression", ["@every", "@every 0s", "@every soon", "not a cron", "61 * * * *"])
def test_parse_schedule_invalid(expression: str) -> None:
    with pytest.raises(ValueError):
        parse_schedule(expression)


class ImmediateSchedule(Schedule):
    def next_run(self, after: datetime) -> datetime:
        return after


class TestScheduler:
    """Tests for the Scheduler run loop."""

    def test_runs_until_stopped(self) -> None:
        calls = []
        scheduler = Scheduler(ImmediateSchedule(), lambda: None)

        def task() -> None:
            calls.append(1)
            if len(calls) == 3:
                scheduler.stop()

        scheduler.task = task
        scheduler.run_forever()

        assert len(calls) == 3

    def test_failed_run_does_not_stop_loop(self) -> None:
        calls = []
        scheduler = Scheduler(ImmediateSchedule(), lambda: None)

        def task() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise TransportError("Traefik unreachable")
            if len(calls) == 2:
                raise RuntimeError("unexpected")
            scheduler.stop()

        scheduler.task = task
        scheduler.run_forever()

        assert len(calls) == 3

    def test_stop_interrupts_wait(self) -> None:
        calls = []
        stop_event = threading.Event()
        stop_event.set()
        scheduler = Scheduler(parse_schedule("@every 1h"), lambda: calls.append(1), stop_event=stop_event)

        scheduler.run_forever()

        assert calls == []
