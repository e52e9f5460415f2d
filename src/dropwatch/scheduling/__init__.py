"""Triggers: interval timer, folder watcher, and the single-flight coordinator."""

from dropwatch.scheduling.coordinator import (
    CoordinatorStats,
    Trigger,
    TriggerCoordinator,
    TriggerSource,
)
from dropwatch.scheduling.timer import IntervalTimer
from dropwatch.scheduling.watcher import FolderWatcher, IncomingEventHandler

__all__ = [
    "CoordinatorStats",
    "FolderWatcher",
    "IncomingEventHandler",
    "IntervalTimer",
    "Trigger",
    "TriggerCoordinator",
    "TriggerSource",
]
