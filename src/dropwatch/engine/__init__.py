"""Compute engine boundary: protocols, loader and test doubles."""

from dropwatch.engine.loader import load_engine
from dropwatch.engine.protocol import (
    ComputeEngine,
    Experiment,
    ExperimentListener,
    LoadResult,
    Model,
    OverrideRow,
    Project,
    ReplicationOutcome,
    ReplicationState,
    ResourceOverrides,
    ResourceUsageEntry,
    TargetResult,
)

__all__ = [
    "ComputeEngine",
    "Experiment",
    "ExperimentListener",
    "LoadResult",
    "Model",
    "OverrideRow",
    "Project",
    "ReplicationOutcome",
    "ReplicationState",
    "ResourceOverrides",
    "ResourceUsageEntry",
    "TargetResult",
    "load_engine",
]
