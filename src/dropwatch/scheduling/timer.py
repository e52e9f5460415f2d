"""Periodic timer that fires the fallback scan of Incoming.

┌──────────────────────────────────────────────────────────────────────────────┐
│  INTERVAL TIMER                                                               │
│                                                                               │
│   start(callback, interval_seconds)                                           │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   while not stop_event.wait(interval):                  │                │
│   │       tick_count += 1                                   │                │
│   │       last_tick = now()                                 │                │
│   │       callback()         exceptions logged, loop lives  │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop() → stop_event.set(); thread.join(timeout)                             │
│                                                                               │
│  The callback only submits a trigger; the run itself happens on the          │
│  coordinator's consumer thread, so a slow run never delays a tick.           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], Any]


class IntervalTimer:
    """Calls a sync callback every ``interval_seconds`` on a daemon thread.

    Example:
        >>> timer = IntervalTimer()
        >>> timer.start(lambda: print("tick"), interval_seconds=5.0)
        >>> # ... later ...
        >>> timer.stop()
    """

    name = "interval"

    def __init__(self, *, join_timeout: float = 5.0) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._failures = 0
        self._last_tick: datetime | None = None
        self._interval: float = 5.0
        self._started = False
        self._join_timeout = join_timeout
        self._lock = threading.Lock()

    def start(self, callback: TickCallback, interval_seconds: float = 5.0) -> None:
        """Start the loop in a daemon thread. A second call is ignored."""
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        if self._started:
            logger.warning("timer.already_started")
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("timer.started", interval_seconds=interval_seconds)
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)

                try:
                    callback()
                except Exception as e:
                    with self._lock:
                        self._failures += 1
                    logger.exception("timer.tick_failed", error=str(e))

            logger.info("timer.stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="dropwatch-timer")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop, waiting up to ``join_timeout`` for a running tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("timer.stop_timeout")

        self._started = False

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "timer": self.name,
            "tick_count": self._tick_count,
            "failures": self._failures,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
