"""
test_guard.py - Unit tests for SingleFlightGuard

Tests:
- Holding and releasing
- Nested entry fails immediately
- Release on exceptions
- Entry from another thread fails without waiting
"""

import threading
import pytest

from loanledger import SingleFlightGuard, ReentrantCall


class TestHold:
    """Tests for basic hold / release."""

    def test_idle_guard(self):
        guard = SingleFlightGuard("g")
        assert not guard.held
        assert guard.operation is None

    def test_held_inside_block(self):
        guard = SingleFlightGuard("g")
        with guard.hold("fund_loan") as held:
            assert held is guard
            assert guard.held
            assert guard.operation == "fund_loan"
        assert not guard.held
        assert guard.operation is None

    def test_nested_hold_rejected(self):
        guard = SingleFlightGuard("g")
        with guard.hold("outer"):
            with pytest.raises(ReentrantCall, match="outer"):
                with guard.hold("inner"):
                    pass
            # Outer operation still owns the guard
            assert guard.operation == "outer"

    def test_released_after_exception(self):
        guard = SingleFlightGuard("g")
        with pytest.raises(RuntimeError):
            with guard.hold("boom"):
                raise RuntimeError("boom")
        assert not guard.held
        with guard.hold("again"):
            pass

    def test_guards_are_independent(self):
        first = SingleFlightGuard("a")
        second = SingleFlightGuard("b")
        with first.hold("x"):
            with second.hold("y"):
                assert first.held and second.held


class TestConcurrency:
    """Tests for entry from another thread."""

    def test_other_thread_rejected_immediately(self):
        guard = SingleFlightGuard("g")
        entered = threading.Event()
        release = threading.Event()
        errors = []

        def hold_until_released():
            with guard.hold("slow"):
                entered.set()
                release.wait(timeout=5)

        worker = threading.Thread(target=hold_until_released)
        worker.start()
        try:
            assert entered.wait(timeout=5)
            try:
                with guard.hold("fast"):
                    pass
            except ReentrantCall as exc:
                errors.append(exc)
        finally:
            release.set()
            worker.join(timeout=5)

        assert len(errors) == 1
        assert not guard.held
