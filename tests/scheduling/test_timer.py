"""Tests for IntervalTimer."""

import threading
import time

import pytest

from dropwatch.scheduling.timer import IntervalTimer


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestIntervalTimer:
    def test_ticks_until_stopped(self):
        ticks = []
        timer = IntervalTimer()
        timer.start(lambda: ticks.append(1), interval_seconds=0.02)
        try:
            assert _wait_for(lambda: len(ticks) >= 3)
            assert timer.is_running
        finally:
            timer.stop()
        assert not timer.is_running
        count = timer.tick_count
        time.sleep(0.08)
        assert timer.tick_count == count
        assert timer.last_tick is not None

    def test_first_tick_waits_one_interval(self):
        ticks = []
        timer = IntervalTimer()
        timer.start(lambda: ticks.append(1), interval_seconds=10)
        try:
            time.sleep(0.05)
            assert ticks == []
        finally:
            timer.stop()

    def test_callback_exception_does_not_kill_loop(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        timer = IntervalTimer()
        timer.start(flaky, interval_seconds=0.02)
        try:
            assert _wait_for(lambda: len(calls) >= 2)
            assert timer.is_running
        finally:
            timer.stop()
        assert timer.health()["failures"] >= 2

    def test_second_start_ignored(self):
        first, second = threading.Event(), threading.Event()
        timer = IntervalTimer()
        timer.start(first.set, interval_seconds=0.02)
        try:
            timer.start(second.set, interval_seconds=0.02)
            assert first.wait(2.0)
            assert not second.is_set()
        finally:
            timer.stop()

    @pytest.mark.parametrize("interval", [0, -1])
    def test_non_positive_interval(self, interval):
        with pytest.raises(ValueError):
            IntervalTimer().start(lambda: None, interval_seconds=interval)

    def test_stop_without_start(self):
        IntervalTimer().stop()

    def test_health(self):
        timer = IntervalTimer()
        health = timer.health()
        assert health["healthy"] is False
        assert health["tick_count"] == 0
        assert health["last_tick"] is None
