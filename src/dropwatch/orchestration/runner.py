"""Run Orchestrator: one WorkItem through the fixed step sequence.

The orchestrator claims a project file from Incoming, loads it through the
compute engine, runs the enabled steps strictly in order, and routes the
file to Success or Error according to the verdict.

Step sequence::

    CLAIM ─► LOAD ─► VALIDATE ─► FIND_MODEL ─┐
                                             ▼
    ┌─ execute() ───────────────────────────────────────────────────────┐
    │ DELETE_STATUS      delete_status_first                            │
    │ IMPORT_OVERRIDES   override file present                          │
    │ PRE_RUN_SAVE       save_project and overrides imported            │
    │ RUN_PLAN           run_plan (design errors are hard failures)     │
    │ RUN_RISK_ANALYSIS  run_risk_analysis                              │
    │ RUN_EXPERIMENT     run_experiment                                 │
    │ EXPORT_SCHEDULE    export_schedule                                │
    │ POST_RUN_SAVE      save_project                                   │
    └───────────────────────────────────────────────────────────────────┘
                                             │
                                  ROUTE ─► Success | Error

Each step writes ``"<Step>? (<toggle>)"`` to the status log before it runs
and ``"<Step> completed."`` or ``"<Step> skipped."`` after. The first
exception stops the sequence: the verdict is FAULTED with that step, and the
status log gets ``Project=<path>. Marker=<step>. Error=<message>``.

Example::

    orchestrator = RunOrchestrator(engine, context, status_log, lifecycle)
    verdict = orchestrator.process(context.incoming_dir / "Plant.spfx")
    if not verdict.ok:
        print(f"Faulted at {verdict.faulted_step}: {verdict.error}")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from dropwatch.core.context import RunContext, Stage
from dropwatch.core.errors import (
    DropwatchError,
    ExperimentNotFound,
    FileLifecycleError,
    LoadRejected,
    ModelNotFound,
    wrap_engine_error,
)
from dropwatch.core.lifecycle import FileLifecycle
from dropwatch.core.settings import LoadWarningPolicy
from dropwatch.core.status_log import StatusLog
from dropwatch.engine.protocol import ComputeEngine, Model, Project, ReplicationOutcome, ReplicationState
from dropwatch.framework.logging import get_logger, log_step, push_context
from dropwatch.orchestration.export import export_schedule
from dropwatch.orchestration.importer import ImportResult, import_overrides, load_override_table

logger = get_logger(__name__)


class RunStep(str, Enum):
    """Markers of the run sequence. Values are the status log labels."""

    CLAIM = "Claim"
    LOAD = "Load Project"
    VALIDATE = "Validate Load"
    FIND_MODEL = "Find Model"
    DELETE_STATUS = "Delete Status"
    IMPORT_OVERRIDES = "Import Overrides"
    PRE_RUN_SAVE = "Pre-Run Save"
    RUN_PLAN = "Run Plan"
    RUN_RISK_ANALYSIS = "Run Risk Analysis"
    RUN_EXPERIMENT = "Run Experiment"
    EXPORT_SCHEDULE = "Export Schedule"
    POST_RUN_SAVE = "Post-Run Save"
    ROUTE = "Route"


class VerdictStatus(str, Enum):
    SUCCESS = "Success"
    FAULTED = "Faulted"


@dataclass
class StepRecord:
    """What happened to one step."""

    step: RunStep
    status: str  # "completed", "skipped", "failed"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.name,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            **({"detail": self.detail} if self.detail else {}),
        }


@dataclass
class RunVerdict:
    """Outcome of one pass over one WorkItem. Fresh per WorkItem."""

    work_item: str
    status: VerdictStatus = VerdictStatus.SUCCESS
    faulted_step: RunStep | None = None
    error: str | None = None
    steps: list[StepRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    final_stage: Stage | None = None
    final_path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.status == VerdictStatus.SUCCESS

    @property
    def completed_steps(self) -> list[RunStep]:
        return [s.step for s in self.steps if s.status == "completed"]

    @property
    def skipped_steps(self) -> list[RunStep]:
        return [s.step for s in self.steps if s.status == "skipped"]

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def record(self, step: RunStep) -> StepRecord | None:
        """Last record for ``step``, if it was reached."""
        for record in reversed(self.steps):
            if record.step == step:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_item": self.work_item,
            "status": self.status.value,
            "faulted_step": self.faulted_step.name if self.faulted_step else None,
            "error": self.error,
            "final_stage": self.final_stage.value if self.final_stage else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "steps": [s.to_dict() for s in self.steps],
        }


class _StepFault(Exception):
    """Carries a typed error out of a step to the sequence boundary."""

    def __init__(self, step: RunStep, error: DropwatchError):
        super().__init__(error.message)
        self.step = step
        self.error = error


class StatusLogExperimentListener:
    """Writes experiment lifecycle signals to the status log."""

    def __init__(self, status_log: StatusLog):
        self.status_log = status_log
        self.failed_replications: list[ReplicationOutcome] = []

    def scenario_started(self, scenario: str) -> None:
        self.status_log.record(f"Info:   Started Scenario={scenario}")

    def scenario_ended(self, scenario: str) -> None:
        self.status_log.record(f"Info:   Ended Scenario={scenario}")

    def replication_started(self, scenario: str, replication: int) -> None:
        self.status_log.record(f"Info:   Started Replication={replication} (Scenario={scenario})")

    def replication_ended(self, outcome: ReplicationOutcome) -> None:
        self.status_log.record(
            f"Info:   Ended Replication={outcome.replication} (Scenario={outcome.scenario})"
        )
        if outcome.state != ReplicationState.COMPLETED:
            self.failed_replications.append(outcome)
            self.status_log.record(
                f"Warning: Replication ended. State={outcome.state.value} Message={outcome.error_message}"
            )
            logger.warning(
                "experiment.replication_not_completed",
                scenario=outcome.scenario,
                replication=outcome.replication,
                state=outcome.state.value,
                message=outcome.error_message,
            )


class RunOrchestrator:
    """
    Drives one WorkItem through claim, load, the step sequence and routing.

    The engine is the only collaborator that does real work; everything it
    raises is caught per step and turned into a FAULTED verdict. Only a
    failed terminal move escapes (as FileLifecycleError), because then the
    file is stranded in Processing and the caller must know.
    """

    def __init__(
        self,
        engine: ComputeEngine,
        context: RunContext,
        status_log: StatusLog,
        lifecycle: FileLifecycle | None = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.engine = engine
        self.context = context
        self.status_log = status_log
        self.lifecycle = lifecycle or FileLifecycle(context, status_log)
        self._clock = clock

    # =========================================================================
    # WorkItem pipeline
    # =========================================================================

    def process(self, incoming_path: Path) -> RunVerdict:
        """Claim, load, execute and route one project file.

        Raises:
            FileLifecycleError: the terminal move to Success/Error failed.
        """
        incoming_path = Path(incoming_path)
        verdict = RunVerdict(work_item=incoming_path.name, started_at=self._clock())
        token = push_context(work_item=incoming_path.name, stage=Stage.INCOMING.value)
        try:
            self.status_log.record(f"Info: Processing Project={incoming_path}")
            try:
                processing_path = self._step(
                    verdict, RunStep.CLAIM, True, lambda: self.lifecycle.claim(incoming_path)
                )
            except _StepFault as fault:
                # Nothing was claimed, so there is nothing to route.
                self._fault(verdict, fault, incoming_path)
                verdict.finished_at = self._clock()
                return verdict

            bound = push_context(stage=Stage.PROCESSING.value)
            try:
                self._load_and_execute(verdict, processing_path)
                self._route(verdict, processing_path)
            finally:
                bound.restore()
            return verdict
        finally:
            verdict.finished_at = verdict.finished_at or self._clock()
            self.status_log.flush()
            logger.info(
                "run.finished",
                status=verdict.status.value,
                faulted_step=verdict.faulted_step.name if verdict.faulted_step else None,
                duration_seconds=verdict.duration_seconds,
            )
            token.restore()

    def _load_and_execute(self, verdict: RunVerdict, project_path: Path) -> None:
        try:
            result = self._step(
                verdict, RunStep.LOAD, True, lambda: self.engine.load_project(project_path)
            )
            self._step(
                verdict,
                RunStep.VALIDATE,
                self.context.load_warning_policy.value,
                lambda: self._validate_load(result.warnings, project_path),
            )
            model = self._step(
                verdict, RunStep.FIND_MODEL, self.context.model_name,
                lambda: self._find_model(result.project),
            )
        except _StepFault as fault:
            self._fault(verdict, fault, project_path)
            return

        self.execute(result.project, model, project_path, verdict=verdict)

    def _validate_load(self, warnings: list[str], project_path: Path) -> int:
        if not warnings:
            return 0
        self.status_log.record_warnings(
            f"Found {len(warnings)} Warnings while loading={project_path}", warnings
        )
        if self.context.load_warning_policy == LoadWarningPolicy.REJECT:
            raise LoadRejected(
                f"Project loaded with {len(warnings)} warning(s)", warnings=warnings
            )
        return len(warnings)

    def _find_model(self, project: Project) -> Model:
        model = project.get_model(self.context.model_name)
        if model is None:
            raise ModelNotFound(f"Model={self.context.model_name} Not Found In Project")
        return model

    def _route(self, verdict: RunVerdict, processing_path: Path) -> None:
        started = self._clock()
        stage = Stage.SUCCESS if verdict.ok else Stage.ERROR
        try:
            verdict.final_path = self.lifecycle.complete(processing_path, success=verdict.ok)
        except FileLifecycleError as e:
            e.with_context(step=RunStep.ROUTE.name, stage=Stage.PROCESSING.value)
            verdict.steps.append(
                StepRecord(RunStep.ROUTE, "failed", started, self._clock(), error=e.message)
            )
            self.status_log.record(
                f"Error: Project={processing_path}. Marker={RunStep.ROUTE.value}. Error={e.message}"
            )
            logger.error("run.route_failed", **e.to_dict())
            raise
        verdict.final_stage = stage
        verdict.steps.append(StepRecord(RunStep.ROUTE, "completed", started, self._clock()))

    # =========================================================================
    # Step sequence
    # =========================================================================

    def execute(
        self,
        project: Project,
        model: Model,
        project_path: Path,
        *,
        verdict: RunVerdict | None = None,
    ) -> RunVerdict:
        """Run the enabled steps against a loaded model, strictly in order."""
        ctx = self.context
        verdict = verdict or RunVerdict(work_item=Path(project_path).name, started_at=self._clock())
        override_present = ctx.override_path is not None and ctx.override_path.is_file()
        imported: list[ImportResult] = []

        try:
            self._step(verdict, RunStep.DELETE_STATUS, ctx.delete_status_first, self.status_log.clear)
            result = self._step(
                verdict,
                RunStep.IMPORT_OVERRIDES,
                override_present,
                lambda: self._import_overrides(model),
            )
            if result is not None:
                imported.append(result)
            self._step(
                verdict,
                RunStep.PRE_RUN_SAVE,
                ctx.save_project and bool(imported),
                lambda: self._save(project, project_path, "Saving Project Prior To Run Plan"),
            )
            self._step(
                verdict,
                RunStep.RUN_PLAN,
                ctx.run_plan,
                lambda: model.run_plan(allow_design_errors=False),
            )
            self._step(verdict, RunStep.RUN_RISK_ANALYSIS, ctx.run_risk_analysis, model.run_risk_analysis)
            self._step(
                verdict,
                RunStep.RUN_EXPERIMENT,
                ctx.run_experiment,
                lambda: self._run_experiment(model),
            )
            self._step(
                verdict,
                RunStep.EXPORT_SCHEDULE,
                ctx.export_schedule,
                lambda: self._export(model),
            )
            self._step(
                verdict,
                RunStep.POST_RUN_SAVE,
                ctx.save_project,
                lambda: self._save(project, project_path, "Saving Project After Schedule Run"),
            )
        except _StepFault as fault:
            self._fault(verdict, fault, project_path)
            return verdict

        self.status_log.record("Run completed.")
        return verdict

    def _step(self, verdict: RunVerdict, step: RunStep, toggle: Any, action: Callable[[], Any]) -> Any:
        """Run one gated step. Falsy ``toggle`` skips it.

        Raises:
            _StepFault: the action raised. The error is typed and carries the step.
        """
        self.status_log.record(f"{step.value}? ({toggle})")
        started = self._clock()
        if not toggle:
            verdict.steps.append(StepRecord(step, "skipped", started, started))
            self.status_log.record(f"{step.value} skipped.")
            return None

        try:
            with log_step(f"run.{step.name.lower()}"):
                outcome = action()
        except Exception as e:
            error = wrap_engine_error(e, step.name)
            verdict.steps.append(StepRecord(step, "failed", started, self._clock(), error=error.message))
            raise _StepFault(step, error) from e

        record = StepRecord(step, "completed", started, self._clock())
        if isinstance(outcome, ImportResult):
            record.detail = {"applied": outcome.applied, "skipped": outcome.skipped}
        elif step == RunStep.EXPORT_SCHEDULE and isinstance(outcome, int):
            record.detail = {"rows": outcome}
        verdict.steps.append(record)
        self.status_log.record(f"{step.value} completed.")
        return outcome

    def _fault(self, verdict: RunVerdict, fault: _StepFault, project_path: Path) -> None:
        verdict.status = VerdictStatus.FAULTED
        verdict.faulted_step = fault.step
        verdict.error = fault.error.message
        fault.error.with_context(work_item=Path(project_path).name, path=str(project_path))
        self.status_log.record(
            f"Project={project_path}. Marker={fault.step.value}. Error={fault.error.message}"
        )
        logger.error("run.faulted", **fault.error.to_dict())

    # =========================================================================
    # Step bodies
    # =========================================================================

    def _import_overrides(self, model: Model) -> ImportResult | None:
        table = load_override_table(self.context.override_path, status_log=self.status_log)
        if table is None:
            return None
        return import_overrides(model, table, status_log=self.status_log)

    def _save(self, project: Project, project_path: Path, message: str) -> list[str]:
        self.status_log.record(message)
        warnings = list(self.engine.save_project(project, project_path) or [])
        if warnings:
            self.status_log.record_warnings(
                f"Warning: Project saved with {len(warnings)} warnings", warnings
            )
        else:
            self.status_log.record("Info: Project Saved.")
        return warnings

    def _run_experiment(self, model: Model) -> StatusLogExperimentListener:
        name = self.context.effective_experiment_name
        experiment = model.get_experiment(name)
        if experiment is None:
            raise ExperimentNotFound(f"Experiment={name} not found in Model={model.name}")

        listener = StatusLogExperimentListener(self.status_log)
        self.status_log.record(f"Info: Experiment={name} resetting..")
        experiment.reset()
        self.status_log.record(f"Info: Experiment={name} starting run...")
        experiment.run(listener)
        self.status_log.record(f"Info: Experiment={name} finished run.")
        return listener

    def _export(self, model: Model) -> int:
        path = self.context.export_path
        self.status_log.record(f"Exporting Schedule={path}")
        return export_schedule(model, path)
