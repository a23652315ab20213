from __future__ import annotations

import pytest

from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.workflow.poll import FakeClock, poll_until
from topology_orchestrator.workflow.progress import ProgressTracker


class InterruptingClock(FakeClock):
    def sleep(self, seconds: float) -> None:
        super().sleep(seconds)
        raise InterruptedError


def test_poll_returns_first_accepted_value():
    values = iter([1, 2, 3, 4])
    clock = FakeClock()

    outcome = poll_until(lambda: next(values), lambda v: v >= 3, interval_seconds=5, clock=clock)

    assert outcome.done
    assert outcome.value == 3
    assert clock.sleeps == [5, 5]


def test_poll_times_out_with_last_value():
    clock = FakeClock()

    outcome = poll_until(lambda: "active", lambda v: False, interval_seconds=10, deadline_seconds=25, clock=clock)

    assert outcome.timed_out
    assert outcome.value == "active"
    assert clock.sleeps == [10, 10, 10]


def test_abandoning_error_keeps_initial_value():
    def fetch() -> str:
        raise RemoteAPIError("down")

    outcome = poll_until(fetch, lambda v: True, 1, clock=FakeClock(), abandon_on=(RemoteAPIError,), initial="active")

    assert not outcome.done
    assert outcome.value == "active"
    assert isinstance(outcome.error, RemoteAPIError)


def test_other_errors_propagate():
    def fetch() -> str:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        poll_until(fetch, lambda v: True, 1, clock=FakeClock(), abandon_on=(RemoteAPIError,))


def test_interrupted_sleep_does_not_stop_polling():
    values = iter([False, True])
    clock = InterruptingClock()

    outcome = poll_until(lambda: next(values), bool, interval_seconds=3, clock=clock)

    assert outcome.done
    assert clock.sleeps == [3]


def test_progress_never_moves_backwards():
    seen: list[int] = []
    tracker = ProgressTracker(seen.append)

    tracker.update(15)
    tracker.update(5)
    tracker.update(15)
    tracker.update(250)
    tracker.finish()

    assert seen == [15, 100]
    assert tracker.value == 100
    assert tracker.history == [15, 100]
