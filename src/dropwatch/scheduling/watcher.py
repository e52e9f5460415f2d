"""Filesystem notifications for the Incoming folder (watchdog)."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from dropwatch.core.context import RunContext
from dropwatch.framework.logging import get_logger
from dropwatch.scheduling.coordinator import Trigger, TriggerSource

logger = get_logger(__name__)

TriggerCallback = Callable[[Trigger], Any]


class IncomingEventHandler(FileSystemEventHandler):
    """Turns created, modified and moved-in events into Triggers.

    Only files that qualify as work items raise a trigger. Foreign files are
    left for the next timer scan, which moves them to Error.
    """

    def __init__(self, context: RunContext, callback: TriggerCallback) -> None:
        super().__init__()
        self.context = context
        self.callback = callback

    def _emit(self, source: TriggerSource, raw_path: str | bytes) -> None:
        path = Path(os.fsdecode(raw_path))
        if not self.context.matches(path):
            return
        logger.debug("watcher.event", source=source.value, path=str(path))
        try:
            self.callback(Trigger(source, path))
        except Exception as e:
            logger.exception("watcher.callback_failed", path=str(path), error=str(e))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(TriggerSource.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(TriggerSource.CHANGED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(TriggerSource.MOVED, event.dest_path)


class FolderWatcher:
    """Watches ``context.incoming_dir`` (non-recursive) on a watchdog observer thread."""

    def __init__(self, context: RunContext, callback: TriggerCallback) -> None:
        self.context = context
        self.handler = IncomingEventHandler(context, callback)
        self._observer: Any = None

    def start(self) -> None:
        if self.is_running:
            logger.warning("watcher.already_started")
            return
        observer = Observer()
        observer.schedule(self.handler, str(self.context.incoming_dir), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(
            "watcher.started",
            folder=str(self.context.incoming_dir),
            pattern=self.context.watch_pattern,
        )

    def stop(self, timeout: float = 5.0) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=timeout)
        self._observer = None
        logger.info("watcher.stopped")

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "folder": str(self.context.incoming_dir),
            "pattern": self.context.watch_pattern,
        }
