"""
clock.py - Time sources for the ledger

LogicalClock is a manual, forward-only clock for simulations and tests.
SystemClock reads wall-clock time but never steps back. Both report integer
seconds.
"""

from __future__ import annotations
import threading
import time

from .core import SECONDS_PER_DAY, is_amount


class LogicalClock:
    """
    Manually advanced clock. Time can only move forward, never backward.

    Example:
        clock = LogicalClock(start=1_700_000_000)
        clock.advance_days(30)
    """

    def __init__(self, start: int = 0):
        if not is_amount(start) or start < 0:
            raise ValueError(f"start must be a non-negative int, got {start!r}")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """
        Move the clock forward by seconds and return the new time.

        Raises:
            ValueError: If seconds is negative or not an int
        """
        if not is_amount(seconds) or seconds < 0:
            raise ValueError(f"Cannot advance by {seconds!r}")
        self._now += seconds
        return self._now

    def advance_days(self, days: int) -> int:
        return self.advance(days * SECONDS_PER_DAY)

    def advance_to(self, new_time: int) -> int:
        """
        Set the clock to new_time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if not is_amount(new_time):
            raise ValueError(f"Time must be int, got {type(new_time)}")
        if new_time < self._now:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._now}"
            )
        self._now = new_time
        return self._now


class SystemClock:
    """
    Wall-clock time in whole seconds, clamped so it never moves backwards.

    A wall-clock step back (NTP correction, manual change) repeats the last
    reading until real time catches up.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last
