"""Compute engine boundary.

The compute engine (project loading, plan, risk analysis, experiments,
saving) is an external collaborator. dropwatch only talks to it through the
protocols below, so an adapter for a concrete engine, or a test double, can
be dropped in without touching the pipeline.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ENGINE BOUNDARY                                                              │
│                                                                               │
│   ComputeEngine                                                               │
│     load_project(path) ──► LoadResult(project, warnings)                      │
│     save_project(project, path) ──► warnings                                  │
│                                                                               │
│   Project.get_model(name) ──► Model | None                                    │
│                                                                               │
│   Model                                                                       │
│     run_plan(allow_design_errors=False)                                       │
│     run_risk_analysis()                                                       │
│     get_experiment(name) ──► Experiment | None                                │
│     resource_overrides() ──► ResourceOverrides | None  (None: no Resources)   │
│     resource_usage_log() ──► [ResourceUsageEntry]                             │
│     target_results() ──► [TargetResult]                                       │
│                                                                               │
│   Experiment.reset() / run(listener)                                          │
│     listener: scenario_started/ended, replication_started/ended               │
│                                                                               │
│  Every call may raise. The orchestrator treats any raise as a fault.          │
└──────────────────────────────────────────────────────────────────────────────┘

The ResourceOverrides accessor is keyed by resource name. It replaces
reaching into the engine's object properties by string name: the importer
only ever clears and adds typed OverrideRows.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class OverrideRow:
    """One work-period exception for a resource."""

    start_time: datetime
    end_time: datetime
    category: str


@dataclass(frozen=True)
class ResourceUsageEntry:
    """One row of the plan's resource usage log."""

    owner_name: str
    owner_id: str | None = None
    resource_name: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass(frozen=True)
class TargetResult:
    """Risk-analysis result for one target owner."""

    owner_id: str
    risk_within_bounds_probability: float


class ReplicationState(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class ReplicationOutcome:
    """How one experiment replication ended."""

    scenario: str
    replication: int
    state: ReplicationState = ReplicationState.COMPLETED
    error_message: str | None = None


@dataclass
class LoadResult:
    """What ``load_project`` returns: the handle plus any load warnings."""

    project: Project
    warnings: list[str] = field(default_factory=list)


@runtime_checkable
class ExperimentListener(Protocol):
    """Lifecycle callbacks observed while an experiment runs (logging only)."""

    def scenario_started(self, scenario: str) -> None: ...

    def scenario_ended(self, scenario: str) -> None: ...

    def replication_started(self, scenario: str, replication: int) -> None: ...

    def replication_ended(self, outcome: ReplicationOutcome) -> None: ...


@runtime_checkable
class Experiment(Protocol):
    name: str

    def reset(self) -> None: ...

    def run(self, listener: ExperimentListener | None = None) -> None:
        """Run synchronously, calling ``listener`` on lifecycle events."""
        ...


@runtime_checkable
class ResourceOverrides(Protocol):
    """Typed access to the work-period exceptions of declared resources."""

    def resource_names(self) -> Sequence[str]: ...

    def clear(self, resource_name: str) -> None: ...

    def add(self, resource_name: str, row: OverrideRow) -> None: ...


@runtime_checkable
class Model(Protocol):
    name: str

    def run_plan(self, *, allow_design_errors: bool = False) -> None: ...

    def run_risk_analysis(self) -> None: ...

    def get_experiment(self, name: str) -> Experiment | None: ...

    def resource_overrides(self) -> ResourceOverrides | None:
        """None when the model has no Resources declaration."""
        ...

    def resource_usage_log(self) -> Iterable[ResourceUsageEntry]: ...

    def target_results(self) -> Iterable[TargetResult]: ...


@runtime_checkable
class Project(Protocol):
    def get_model(self, name: str) -> Model | None: ...


@runtime_checkable
class ComputeEngine(Protocol):
    """Loads and saves projects. Implemented by engine adapters."""

    def load_project(self, path: Path) -> LoadResult: ...

    def save_project(self, project: Project, path: Path) -> list[str]:
        """Save and return any save warnings."""
        ...
