"""
Polling primitive.

Every blocking wait in the workflow goes through poll_until:
attribute pool drain, deployment status, procedure status.

The clock is injectable so tests can run waits instantly.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, TypeVar

T = TypeVar("T")


class Clock(Protocol):
    def monotonic(self) -> float:
        """Return a monotonic timestamp in seconds."""

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""


class SystemClock:
    """Real time clock."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class FakeClock:
    """
    Clock that advances only when sleep is called.

    sleeps records each requested delay so tests can assert on waits.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """
    Result of a poll loop.

    value
    Last observed value. None when nothing was observed.

    done
    True when the done predicate accepted the value.

    timed_out
    True when the deadline passed first.

    error
    Exception that abandoned the loop, if any.
    """

    value: Optional[T]
    done: bool
    timed_out: bool = False
    error: Optional[BaseException] = None


def sleep_uninterrupted(clock: Clock, seconds: float) -> None:
    """Sleep, treating an interrupted sleep as finished."""
    try:
        clock.sleep(seconds)
    except InterruptedError:
        pass


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    interval_seconds: float,
    deadline_seconds: Optional[float] = None,
    clock: Optional[Clock] = None,
    abandon_on: tuple[type[BaseException], ...] = (),
    initial: Optional[T] = None,
) -> PollOutcome[T]:
    """
    Call fetch until is_done accepts its value.

    Sleeps interval_seconds between calls. An exception listed in abandon_on
    stops the loop and is returned with the last observed value. Other
    exceptions propagate.
    """
    clock = clock or SystemClock()
    started = clock.monotonic()
    value = initial

    while True:
        try:
            value = fetch()
        except abandon_on as exc:
            return PollOutcome(value=value, done=False, error=exc)

        if is_done(value):
            return PollOutcome(value=value, done=True)

        if deadline_seconds is not None and clock.monotonic() - started >= deadline_seconds:
            return PollOutcome(value=value, done=False, timed_out=True)

        sleep_uninterrupted(clock, interval_seconds)
