"""Unit tests for the adaptive deadline and the poll loop, driven by a fake clock."""

import asyncio
import itertools

import pytest

from gumploop.utils.polling import AdaptiveDeadline, CompletionTimeoutError, poll_until

BASE = 30 * 60
EXTENSION = 15 * 60
THRESHOLD = 60
INTERVAL = 2


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.now += seconds


def make_deadline(clock):
    return AdaptiveDeadline(
        base=BASE, extension=EXTENSION, activity_threshold=THRESHOLD, clock=clock
    )


def run(clock, deadline, probe, activity_probe=None):
    return asyncio.run(
        poll_until(
            probe,
            deadline,
            activity_probe=activity_probe,
            interval=INTERVAL,
            label="test",
            sleep=clock.sleep,
        )
    )


def test_continuous_activity_keeps_extending():
    clock = FakeClock()
    deadline = make_deadline(clock)
    counter = itertools.count()

    async def probe():
        return clock.now >= 3 * 3600

    run(clock, deadline, probe, lambda: f"output {next(counter)}")

    assert clock.now >= 3 * 3600
    assert deadline.extensions >= 10


def test_no_activity_fails_at_base_deadline():
    clock = FakeClock()
    deadline = make_deadline(clock)

    async def probe():
        return False

    with pytest.raises(CompletionTimeoutError, match="test"):
        run(clock, deadline, probe, lambda: "same output")

    assert BASE <= clock.now < BASE + INTERVAL
    assert deadline.extensions == 0


def test_silent_gap_is_bounded():
    clock = FakeClock()
    deadline = make_deadline(clock)
    last_activity = 3000
    counter = itertools.count()

    def snapshot():
        return f"busy {next(counter)}" if clock.now < last_activity else "silent"

    async def probe():
        return False

    with pytest.raises(CompletionTimeoutError):
        run(clock, deadline, probe, snapshot)

    assert clock.now > BASE
    assert clock.now - last_activity <= EXTENSION + THRESHOLD


def test_success_returns_immediately():
    clock = FakeClock()
    calls = []

    async def probe():
        calls.append(clock.now)
        return True

    run(clock, make_deadline(clock), probe)
    assert calls == [INTERVAL]


def test_failing_activity_snapshot_counts_as_silence():
    clock = FakeClock()
    deadline = make_deadline(clock)

    def broken():
        raise RuntimeError("can't find session")

    async def probe():
        return False

    with pytest.raises(CompletionTimeoutError):
        run(clock, deadline, probe, broken)
    assert deadline.extensions == 0


def test_observe_only_extends_near_deadline():
    clock = FakeClock()
    deadline = make_deadline(clock)

    clock.now = 100
    assert deadline.observe("a") is False

    clock.now = BASE - 10
    assert deadline.observe("b") is True
    assert deadline.deadline == clock.now + EXTENSION
    assert deadline.extensions == 1
