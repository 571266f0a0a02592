"""Host clock sources."""

import time
from collections.abc import Callable
from typing import Protocol

from .exceptions import ClockUnavailableError


class Clock(Protocol):
    """Supplies the current time as integer seconds since the epoch."""

    def now(self) -> int: ...


class SystemClock:
    """Clock backed by the host's wall clock."""

    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """Clock returning a settable time. Used for replays and tests."""

    def __init__(self, now: int) -> None:
        self._now = now

    def now(self) -> int:
        return self._now

    def set(self, now: int) -> None:
        self._now = now

    def advance(self, seconds: int) -> None:
        self._now += seconds


class CallableClock:
    """Adapts a zero-argument callable to the Clock protocol."""

    def __init__(self, source: Callable[[], int | None]) -> None:
        self._source = source

    def now(self) -> int:
        value = self._source()
        if value is None:
            raise ClockUnavailableError("Clock source returned no time")
        return int(value)


def read_clock(clock: Clock) -> int:
    """Read the clock once, mapping any failure to ClockUnavailableError."""
    try:
        return clock.now()
    except ClockUnavailableError:
        raise
    except Exception as e:
        raise ClockUnavailableError(f"Clock read failed: {e}") from e
