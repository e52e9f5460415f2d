"""Trigger Coordinator: at most one run at a time, whatever fires.

Two producers raise triggers: the folder watcher (created, changed and
moved-in files) and the interval timer (a fallback scan of Incoming). Both
feed one queue of depth one, drained by a single consumer thread. A trigger
that finds the queue full is dropped: the pending trigger will scan Incoming
anyway, so nothing is lost.

┌──────────────────────────────────────────────────────────────────────────────┐
│                                                                               │
│   FolderWatcher ──┐                                                           │
│                   ├─► submit(trigger) ─► [ depth-1 queue ] ─► consumer thread │
│   IntervalTimer ──┘        full? drop                          │              │
│                                                                ▼              │
│                                                      check_and_run(trigger)   │
│                                                        run_lock.acquire(      │
│                                                           blocking=False)     │
│                                                        busy? no-op            │
│                                                        select candidate       │
│                                                        pipeline(candidate)    │
│                                                        release                │
└──────────────────────────────────────────────────────────────────────────────┘

The run lock is injected so a caller doing a synchronous pass (``dropwatch
once``) and the consumer thread exclude each other. Nothing a pipeline
raises escapes ``check_and_run``.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from dropwatch.core.context import RunContext, Stage
from dropwatch.core.errors import FileLifecycleError
from dropwatch.core.lifecycle import FileLifecycle
from dropwatch.framework.logging import get_logger, push_context

if TYPE_CHECKING:
    from dropwatch.core.status_log import StatusLog

logger = get_logger(__name__)

Pipeline = Callable[[Path], Any]


class RunLock(Protocol):
    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool: ...

    def release(self) -> None: ...


class TriggerSource(str, Enum):
    """What raised a trigger."""

    CREATED = "Created"
    CHANGED = "Changed"
    MOVED = "Moved"
    TIMER = "Timer"
    MANUAL = "Manual"

    @property
    def is_scan(self) -> bool:
        """Scan triggers look at the whole Incoming folder."""
        return self in (TriggerSource.TIMER, TriggerSource.MANUAL)


@dataclass(frozen=True)
class Trigger:
    source: TriggerSource
    path: Path | None = None

    @classmethod
    def timer(cls) -> Trigger:
        return cls(TriggerSource.TIMER)

    @classmethod
    def manual(cls) -> Trigger:
        return cls(TriggerSource.MANUAL)


@dataclass
class CoordinatorStats:
    """Counters for the health endpoint and the CLI."""

    triggers_received: int = 0
    triggers_dropped: int = 0
    runs_started: int = 0
    busy_skips: int = 0
    foreign_rejected: int = 0
    failures: int = 0
    last_run_at: datetime | None = None
    last_trigger: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "triggers_received": self.triggers_received,
            "triggers_dropped": self.triggers_dropped,
            "runs_started": self.runs_started,
            "busy_skips": self.busy_skips,
            "foreign_rejected": self.foreign_rejected,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_trigger": self.last_trigger,
        }


class TriggerCoordinator:
    """Serializes runs of ``pipeline`` behind a non-blocking run lock.

    Example:
        >>> coordinator = TriggerCoordinator(context, lifecycle, orchestrator.process)
        >>> coordinator.start()
        >>> coordinator.submit(Trigger.timer())
        >>> coordinator.stop()
    """

    def __init__(
        self,
        context: RunContext,
        lifecycle: FileLifecycle,
        pipeline: Pipeline,
        *,
        run_lock: RunLock | None = None,
        status_log: StatusLog | None = None,
        poll_timeout: float = 0.5,
    ) -> None:
        self.context = context
        self.lifecycle = lifecycle
        self.pipeline = pipeline
        self.status_log = status_log
        self.stats = CoordinatorStats()
        self.last_result: Any = None
        self._run_lock: RunLock = run_lock if run_lock is not None else threading.Lock()
        self._queue: queue.Queue[Trigger | None] = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._poll_timeout = poll_timeout

    # =========================================================================
    # Single-flight run
    # =========================================================================

    def check_and_run(self, trigger: Trigger) -> bool:
        """Run the pipeline once for ``trigger`` unless a run is in progress.

        Returns:
            True when the pipeline was invoked, False for a busy no-op or when
            nothing qualified.
        """
        if not self._run_lock.acquire(blocking=False):
            self.stats.bump("busy_skips")
            logger.debug("coordinator.busy", trigger=trigger.source.value)
            return False

        token = push_context(trigger=trigger.source.value)
        candidate: Path | None = None
        try:
            self.stats.last_trigger = trigger.source.value
            candidate = self._select(trigger)
            if candidate is None:
                return False
            if not candidate.is_file():
                logger.debug("coordinator.candidate_gone", path=str(candidate))
                return False

            self.stats.bump("runs_started")
            self.stats.last_run_at = datetime.now(UTC)
            if self.status_log is not None:
                self.status_log.record(
                    f"Info: Starting run From={trigger.source.value}. Found file={candidate}"
                )
            self.last_result = None
            self.last_result = self.pipeline(candidate)
            return True
        except Exception as e:
            self.stats.bump("failures")
            logger.exception(
                "coordinator.run_failed",
                trigger=trigger.source.value,
                path=str(candidate) if candidate else None,
                error=str(e),
            )
            if self.status_log is not None:
                self.status_log.record(
                    f"Error: Trigger={trigger.source.value} File={candidate}. Error={e}"
                )
            return candidate is not None
        finally:
            token.restore()
            self._run_lock.release()

    def _select(self, trigger: Trigger) -> Path | None:
        """Pick the WorkItem for this trigger, rejecting foreign files on a scan."""
        if not trigger.source.is_scan and trigger.path is not None:
            path = Path(trigger.path)
            if (
                self.context.matches(path)
                and path.parent.resolve() == self.context.incoming_dir.resolve()
                and not self._is_override_file(path)
            ):
                return path
            logger.debug("coordinator.event_ignored", path=str(path))
            return None

        candidate: Path | None = None
        for path in self.lifecycle.list_stage(Stage.INCOMING):
            if self._is_override_file(path):
                continue
            if self.context.matches(path):
                if candidate is None:
                    candidate = path
                continue
            self._reject_foreign(path)
        return candidate

    def _is_override_file(self, path: Path) -> bool:
        """True for the configured override file, which may sit in Incoming."""
        override = self.context.override_path
        return override is not None and path.resolve() == override.resolve()

    def _reject_foreign(self, path: Path) -> None:
        if self.status_log is not None:
            self.status_log.record(f"Warning: Foreign file={path.name} found in Incoming.")
        try:
            self.lifecycle.reject(path)
        except FileLifecycleError as e:
            logger.warning("coordinator.reject_failed", path=str(path), error=e.message)
            return
        self.stats.bump("foreign_rejected")

    # =========================================================================
    # Depth-one queue and consumer
    # =========================================================================

    def submit(self, trigger: Trigger) -> bool:
        """Try to enqueue ``trigger``. Returns False when it was dropped."""
        self.stats.bump("triggers_received")
        try:
            self._queue.put_nowait(trigger)
        except queue.Full:
            self.stats.bump("triggers_dropped")
            logger.debug("coordinator.trigger_dropped", trigger=trigger.source.value)
            return False
        return True

    def start(self) -> None:
        """Start the consumer thread. A second call is ignored."""
        if self.is_running:
            logger.warning("coordinator.already_started")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._consume, daemon=True, name="dropwatch-coordinator")
        self._thread.start()
        logger.info("coordinator.started")

    def _consume(self) -> None:
        while not self._stop_event.is_set():
            try:
                trigger = self._queue.get(timeout=self._poll_timeout)
            except queue.Empty:
                continue
            try:
                if trigger is not None:
                    self.check_and_run(trigger)
            finally:
                self._queue.task_done()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the consumer. An in-flight run is never interrupted.

        With ``timeout=None`` this waits for the in-flight run to finish.
        """
        if self._thread is None:
            return
        self._stop_event.set()
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("coordinator.stop_timeout")
        else:
            logger.info("coordinator.stopped")
        self._thread = None

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Block until the queue is drained and no run holds the lock."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._queue.mutex:
                outstanding = self._queue.unfinished_tasks
            if outstanding == 0 and self._run_lock.acquire(blocking=False):
                self._run_lock.release()
                return True
            time.sleep(0.01)
        return False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()
