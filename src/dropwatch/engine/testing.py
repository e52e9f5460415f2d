"""Engine doubles for tests and dry runs.

Manifesto:
The real compute engine is an external collaborator. Tests, and operators
trying the service without it, need an engine that honours the same
protocols, records every call, and can be scripted to fail at a chosen
step. This module provides that.

ARCHITECTURE
────────────
::

    In-memory doubles:
      FakeResourceOverrides   → dict of resource name → [OverrideRow]
      FakeExperiment          → fires listener callbacks, optional failure
      FakeModel               → plan/risk/experiments, scripted failures
      FakeProject             → models by name

    Engines:
      ScriptedEngine          → returns a pre-built FakeProject
      JsonProjectEngine       → reads/writes a JSON project file

    Every double appends ``(method, *args)`` tuples to a shared ``calls``
    list, so a test can assert what ran and in which order.

JSON project layout (``JsonProjectEngine``)::

    {
      "load_warnings": ["..."],
      "models": {
        "Model": {
          "resources": {"Cut1": [], "Cut2": []},      # omit: no Resources
          "experiments": {"Experiment1": {"scenarios": ["S1"], "replications": 2}},
          "fail": {"run_plan": "Plan has design errors"},
          "resource_usage_log": [{"owner_name": "Order-1", "owner_id": "O1",
                                  "resource_name": "Cut1",
                                  "start_time": "2026-01-05T08:00:00",
                                  "end_time": "2026-01-05T09:00:00"}],
          "target_results": [{"owner_id": "O1", "probability": 0.93}]
        }
      }
    }

Example::

    from dropwatch.engine.testing import FakeModel, FakeProject, ScriptedEngine

    model = FakeModel("Model", resources={"Cut1": [], "Cut2": []})
    engine = ScriptedEngine(FakeProject([model]))
    ...
    assert engine.count("load_project") == 1
    assert model.count("run_plan") == 1
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from dropwatch.engine.protocol import (
    ExperimentListener,
    LoadResult,
    OverrideRow,
    ReplicationOutcome,
    ReplicationState,
    ResourceUsageEntry,
    TargetResult,
)

Call = tuple[Any, ...]


class FakeEngineError(RuntimeError):
    """Raised by doubles scripted to fail."""


class _Recorder:
    calls: list[Call]

    def _record(self, *call: Any) -> None:
        self.calls.append(call)

    def count(self, method: str) -> int:
        """Number of recorded calls to ``method``."""
        return sum(1 for call in self.calls if call[0] == method)

    def methods(self) -> list[str]:
        """Recorded method names in call order."""
        return [call[0] for call in self.calls]


# ---------------------------------------------------------------------------
# Model doubles
# ---------------------------------------------------------------------------


class FakeResourceOverrides:
    """Work-period exceptions of declared resources, held in a dict."""

    def __init__(self, rows: Mapping[str, Iterable[OverrideRow]] | None = None) -> None:
        self.rows: dict[str, list[OverrideRow]] = {
            name: list(existing) for name, existing in (rows or {}).items()
        }
        self.cleared: list[str] = []

    def resource_names(self) -> Sequence[str]:
        return list(self.rows)

    def clear(self, resource_name: str) -> None:
        if resource_name not in self.rows:
            raise KeyError(resource_name)
        self.rows[resource_name] = []
        self.cleared.append(resource_name)

    def add(self, resource_name: str, row: OverrideRow) -> None:
        if resource_name not in self.rows:
            raise KeyError(resource_name)
        self.rows[resource_name].append(row)


class FakeExperiment(_Recorder):
    """Experiment that fires listener callbacks for each scenario and replication.

    ``outcomes`` maps ``(scenario, replication)`` to a non-completed state.
    ``error`` makes ``run()`` raise after the callbacks.
    """

    def __init__(
        self,
        name: str,
        *,
        scenarios: Sequence[str] = ("Scenario1",),
        replications: int = 1,
        outcomes: Mapping[tuple[str, int], ReplicationState] | None = None,
        error: str | None = None,
        calls: list[Call] | None = None,
    ) -> None:
        self.name = name
        self.scenarios = list(scenarios)
        self.replications = replications
        self.outcomes = dict(outcomes or {})
        self.error = error
        self.calls = calls if calls is not None else []

    def reset(self) -> None:
        self._record("experiment.reset", self.name)

    def run(self, listener: ExperimentListener | None = None) -> None:
        self._record("experiment.run", self.name)
        for scenario in self.scenarios:
            if listener is not None:
                listener.scenario_started(scenario)
            for replication in range(1, self.replications + 1):
                state = self.outcomes.get((scenario, replication), ReplicationState.COMPLETED)
                if listener is not None:
                    listener.replication_started(scenario, replication)
                    listener.replication_ended(
                        ReplicationOutcome(
                            scenario=scenario,
                            replication=replication,
                            state=state,
                            error_message=None if state is ReplicationState.COMPLETED else f"{state.value} by script",
                        )
                    )
            if listener is not None:
                listener.scenario_ended(scenario)
        if self.error:
            raise FakeEngineError(self.error)


class FakeModel(_Recorder):
    """Model double.

    ``resources=None`` means the model has no Resources declaration.
    ``fail`` maps a method name (``run_plan``, ``run_risk_analysis``,
    ``get_experiment``) to the message it raises with.
    """

    def __init__(
        self,
        name: str = "Model",
        *,
        resources: Mapping[str, Iterable[OverrideRow]] | None = None,
        experiments: Iterable[FakeExperiment] = (),
        resource_usage_log: Iterable[ResourceUsageEntry] = (),
        target_results: Iterable[TargetResult] = (),
        fail: Mapping[str, str] | None = None,
        calls: list[Call] | None = None,
    ) -> None:
        self.name = name
        self.calls = calls if calls is not None else []
        self.overrides = FakeResourceOverrides(resources) if resources is not None else None
        self.experiments = {exp.name: exp for exp in experiments}
        for exp in self.experiments.values():
            exp.calls = self.calls
        self.usage_log = list(resource_usage_log)
        self.targets = list(target_results)
        self.fail = dict(fail or {})
        self.plan_runs = 0

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail:
            raise FakeEngineError(self.fail[method])

    def run_plan(self, *, allow_design_errors: bool = False) -> None:
        self._record("run_plan", allow_design_errors)
        self._maybe_fail("run_plan")
        self.plan_runs += 1

    def run_risk_analysis(self) -> None:
        self._record("run_risk_analysis")
        self._maybe_fail("run_risk_analysis")

    def get_experiment(self, name: str) -> FakeExperiment | None:
        self._record("get_experiment", name)
        self._maybe_fail("get_experiment")
        return self.experiments.get(name)

    def resource_overrides(self) -> FakeResourceOverrides | None:
        return self.overrides

    def resource_usage_log(self) -> list[ResourceUsageEntry]:
        return list(self.usage_log)

    def target_results(self) -> list[TargetResult]:
        return list(self.targets)


class FakeProject:
    def __init__(self, models: Iterable[FakeModel] = (), *, source: Path | None = None) -> None:
        self.models = {model.name: model for model in models}
        self.source = source

    def get_model(self, name: str) -> FakeModel | None:
        return self.models.get(name)


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------


class ScriptedEngine(_Recorder):
    """Engine that hands out a pre-built project.

    Example::

        engine = ScriptedEngine(project, load_warnings=["Unused property"])
    """

    def __init__(
        self,
        project: FakeProject,
        *,
        load_warnings: Sequence[str] = (),
        save_warnings: Sequence[str] = (),
        fail_on_load: str | None = None,
        fail_on_save: str | None = None,
    ) -> None:
        self.project = project
        self.load_warnings = list(load_warnings)
        self.save_warnings = list(save_warnings)
        self.fail_on_load = fail_on_load
        self.fail_on_save = fail_on_save
        self.calls: list[Call] = []

    def load_project(self, path: Path) -> LoadResult:
        self._record("load_project", Path(path))
        if self.fail_on_load:
            raise FakeEngineError(self.fail_on_load)
        return LoadResult(project=self.project, warnings=list(self.load_warnings))

    def save_project(self, project: FakeProject, path: Path) -> list[str]:
        self._record("save_project", Path(path))
        if self.fail_on_save:
            raise FakeEngineError(self.fail_on_save)
        return list(self.save_warnings)


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class JsonProjectEngine(_Recorder):
    """Engine backed by JSON project files (see module docstring for layout).

    Saving writes the model state back into the same JSON document: current
    overrides and a ``plan_runs`` counter per model. Models share the
    engine's ``calls`` list.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self.last_project: FakeProject | None = None

    def load_project(self, path: Path) -> LoadResult:
        path = Path(path)
        self._record("load_project", path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise FakeEngineError(f"Project={path} is not a valid project file: {e}") from e

        models = [
            self._build_model(name, spec or {})
            for name, spec in document.get("models", {}).items()
        ]
        project = FakeProject(models, source=path)
        self.last_project = project
        return LoadResult(project=project, warnings=list(document.get("load_warnings", [])))

    def _build_model(self, name: str, spec: dict[str, Any]) -> FakeModel:
        resources = spec.get("resources")
        if resources is not None:
            resources = {
                resource: [
                    OverrideRow(
                        start_time=datetime.fromisoformat(row["start_time"]),
                        end_time=datetime.fromisoformat(row["end_time"]),
                        category=row.get("category", ""),
                    )
                    for row in rows or []
                ]
                for resource, rows in resources.items()
            }

        experiments_spec = spec.get("experiments", {})
        if isinstance(experiments_spec, list):
            experiments_spec = {exp_name: {} for exp_name in experiments_spec}
        experiments = [
            FakeExperiment(
                exp_name,
                scenarios=exp.get("scenarios", ["Scenario1"]),
                replications=exp.get("replications", 1),
                error=exp.get("error"),
            )
            for exp_name, exp in experiments_spec.items()
        ]

        usage_log = [
            ResourceUsageEntry(
                owner_name=entry["owner_name"],
                owner_id=entry.get("owner_id"),
                resource_name=entry.get("resource_name"),
                start_time=_parse_time(entry.get("start_time")),
                end_time=_parse_time(entry.get("end_time")),
            )
            for entry in spec.get("resource_usage_log", [])
        ]
        targets = [
            TargetResult(owner_id=t["owner_id"], risk_within_bounds_probability=float(t["probability"]))
            for t in spec.get("target_results", [])
        ]
        model = FakeModel(
            name,
            resources=resources,
            experiments=experiments,
            resource_usage_log=usage_log,
            target_results=targets,
            fail=spec.get("fail"),
            calls=self.calls,
        )
        model.plan_runs = int(spec.get("plan_runs", 0))
        return model

    def save_project(self, project: FakeProject, path: Path) -> list[str]:
        path = Path(path)
        self._record("save_project", path)
        document = json.loads(path.read_text(encoding="utf-8")) if path.is_file() else {}
        models = document.setdefault("models", {})
        for name, model in project.models.items():
            spec = models.setdefault(name, {})
            spec["plan_runs"] = model.plan_runs
            if model.overrides is not None:
                spec["resources"] = {
                    resource: [
                        {
                            "start_time": _format_time(row.start_time),
                            "end_time": _format_time(row.end_time),
                            "category": row.category,
                        }
                        for row in rows
                    ]
                    for resource, rows in model.overrides.rows.items()
                }
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return []


def write_json_project(path: Path, models: Mapping[str, Any] | None = None, **extra: Any) -> Path:
    """Write a JSON project file for :class:`JsonProjectEngine`."""
    document = {"models": dict(models if models is not None else {"Model": {}}), **extra}
    path = Path(path)
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path
