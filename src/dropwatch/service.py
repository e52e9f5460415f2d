"""
DropFolderService: the long-running drop-folder processor.

Owns everything one service instance needs and wires it together::

    DropwatchSettings ──► RunContext (validated, frozen)
                              │
        StatusLog ◄───────────┤
        FileLifecycle ◄───────┤
        RunOrchestrator ◄─────┤ (engine)
                              │
        TriggerCoordinator(pipeline=orchestrator.process, run_lock)
              ▲         ▲
        IntervalTimer  FolderWatcher

``start()`` brings up the coordinator, then the timer, then the watcher and
queues one scan so files already waiting are picked up. ``stop()`` tears
down in reverse order and waits for an in-flight run to finish; runs are
never interrupted.
"""

from __future__ import annotations

import signal
import threading
from datetime import UTC, datetime
from typing import Any

from dropwatch.core.context import RunContext
from dropwatch.core.lifecycle import FileLifecycle
from dropwatch.core.settings import DropwatchSettings
from dropwatch.core.status_log import StatusLog
from dropwatch.engine.protocol import ComputeEngine
from dropwatch.framework.logging import get_logger
from dropwatch.orchestration.runner import RunOrchestrator, RunVerdict
from dropwatch.scheduling.coordinator import RunLock, Trigger, TriggerCoordinator
from dropwatch.scheduling.timer import IntervalTimer
from dropwatch.scheduling.watcher import FolderWatcher

logger = get_logger(__name__)


class DropFolderService:
    """One drop-folder instance bound to one compute engine.

    Example:
        >>> service = DropFolderService(DropwatchSettings(root_folder="/data/drop"), engine)
        >>> service.run_forever()  # until SIGINT / SIGTERM
    """

    def __init__(
        self,
        config: DropwatchSettings | RunContext,
        engine: ComputeEngine,
        *,
        run_lock: RunLock | None = None,
        watch: bool = True,
    ) -> None:
        self.context = config if isinstance(config, RunContext) else RunContext.from_settings(config)
        self.engine = engine
        self.run_lock: RunLock = run_lock if run_lock is not None else threading.Lock()
        self.status_log = StatusLog(self.context.status_path)
        self.lifecycle = FileLifecycle(self.context, self.status_log)
        self.orchestrator = RunOrchestrator(engine, self.context, self.status_log, self.lifecycle)
        self.coordinator = TriggerCoordinator(
            self.context,
            self.lifecycle,
            self.orchestrator.process,
            run_lock=self.run_lock,
            status_log=self.status_log,
        )
        self.timer = IntervalTimer()
        self.watcher = FolderWatcher(self.context, self.coordinator.submit) if watch else None
        self._running = False
        self._started_at: datetime | None = None
        self._shutdown = threading.Event()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        if self._running:
            logger.warning("service.already_started")
            return
        logger.info("service.starting", **self.context.to_dict())
        self.status_log.record(
            f"Info: Service starting. Incoming={self.context.incoming_dir} Pattern={self.context.watch_pattern}"
        )
        self._shutdown.clear()
        self.coordinator.start()
        self.timer.start(self._on_tick, interval_seconds=self.context.poll_interval_seconds)
        if self.watcher is not None:
            self.watcher.start()
        self.coordinator.submit(Trigger.timer())
        self._running = True
        self._started_at = datetime.now(UTC)
        logger.info("service.started")

    def stop(self) -> None:
        """Stop watcher, timer and coordinator. Idempotent."""
        if not self._running:
            return
        logger.info("service.stopping")
        if self.watcher is not None:
            self.watcher.stop()
        self.timer.stop()
        self.coordinator.stop()
        self._running = False
        self._shutdown.set()
        self.status_log.record("Info: Service stopped.")
        logger.info("service.stopped")

    def run_forever(self) -> None:
        """Start, block until SIGINT/SIGTERM (or ``request_shutdown``), then stop."""
        try:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)
        except (ValueError, OSError):
            pass  # Not in main thread

        self.start()
        try:
            while not self._shutdown.wait(1.0):
                pass
        finally:
            self.stop()

    def request_shutdown(self) -> None:
        self._shutdown.set()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        logger.info("service.signal", signal=signum)
        self.request_shutdown()

    def _on_tick(self) -> None:
        self.coordinator.submit(Trigger.timer())

    # =========================================================================
    # Synchronous pass
    # =========================================================================

    def run_once(self) -> RunVerdict | None:
        """Process at most one waiting WorkItem on the calling thread.

        Returns None when nothing qualified, a run was already in progress,
        or the run escaped with a routing failure.
        """
        ran = self.coordinator.check_and_run(Trigger.manual())
        if not ran:
            return None
        result = self.coordinator.last_result
        return result if isinstance(result, RunVerdict) else None

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    def health(self) -> dict[str, Any]:
        timer = self.timer.health()
        watcher = self.watcher.health() if self.watcher is not None else None
        healthy = self._running and timer["healthy"] and self.coordinator.is_running
        if watcher is not None:
            healthy = healthy and watcher["healthy"]
        return {
            "healthy": bool(healthy),
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "timer": timer,
            "watcher": watcher,
            "coordinator": {
                "running": self.coordinator.is_running,
                "pending": self.coordinator.pending,
                **self.coordinator.stats.to_dict(),
            },
        }
