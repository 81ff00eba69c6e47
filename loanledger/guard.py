"""
guard.py - Single-flight reentrancy guard

One guard protects every mutating operation of the object that owns it.
Entering while the guard is held fails immediately with ReentrantCall, never
waits. This covers direct recursion, reentry from a receiver hook fired by
an outbound transfer, and a concurrent call from another thread.

Release happens on every exit path, including exceptions.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional
import threading

from .core import ReentrantCall


class SingleFlightGuard:
    """
    Non-blocking mutual exclusion for a whole ledger (not per record).

    Example:
        guard = SingleFlightGuard("loan_ledger")
        with guard.hold("fund_loan"):
            ...  # any nested guard.hold() raises ReentrantCall
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._operation: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._lock.locked()

    @property
    def operation(self) -> Optional[str]:
        """Name of the in-flight operation, or None."""
        return self._operation

    @contextmanager
    def hold(self, operation: str) -> Iterator[SingleFlightGuard]:
        """
        Hold the guard for the duration of the block.

        Raises:
            ReentrantCall: If another operation already holds the guard
        """
        if not self._lock.acquire(blocking=False):
            raise ReentrantCall(
                f"{self.name}: {operation} rejected while {self._operation} is in flight"
            )
        self._operation = operation
        try:
            yield self
        finally:
            self._operation = None
            self._lock.release()
