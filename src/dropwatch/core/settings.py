"""Service settings for a dropwatch instance.

Settings are read once at startup from ``DROPWATCH_*`` environment
variables, an optional ``.env`` file, and explicit overrides passed by the
CLI. They are validated by pydantic, then turned into an immutable
:class:`~dropwatch.core.context.RunContext` which checks the filesystem.

Fields
──────
root_folder            : Root of the drop-folder tree
incoming_folder        : Watched folder (relative to root, or absolute)
processing_folder      : Holds the project while it runs
success_folder         : Projects that ran cleanly
error_folder           : Projects that faulted, and foreign files
status_file            : Operator status log (default <root>/status.txt)
override_file          : Optional override-data CSV consumed before a run
export_file            : Schedule export target (default <root>/ScheduleExport.xml)
extension              : Project file extension, matched case-insensitively
trigger_filename       : When set, only this exact file name is a work item
model_name             : Model looked up in each project
experiment_name        : Experiment run when run_experiment is on
load_warning_policy    : reject | proceed
poll_interval_seconds  : Timer fallback interval
engine                 : "package.module:factory" for the compute engine
log_level / log_format : Structured logging

Examples:
    >>> settings = DropwatchSettings(root_folder="/data/drop", run_experiment=True)
    >>> settings.resolve(settings.incoming_folder)
    PosixPath('/data/drop/Incoming')
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoadWarningPolicy(str, Enum):
    """What to do when the engine loads a project with warnings."""

    REJECT = "reject"  # log each warning, route to Error, do not run
    PROCEED = "proceed"  # log each warning and run anyway


class DropwatchSettings(BaseSettings):
    """Settings for one dropwatch service instance."""

    model_config = SettingsConfigDict(
        env_prefix="DROPWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ── Folders ──────────────────────────────────────────────────
    root_folder: Path = Field(default_factory=Path.cwd)
    incoming_folder: Path = Path("Incoming")
    processing_folder: Path = Path("Processing")
    success_folder: Path = Path("Success")
    error_folder: Path = Path("Error")

    # ── Files ────────────────────────────────────────────────────
    status_file: Path | None = None
    override_file: Path | None = None
    export_file: Path | None = None

    # ── Work item selection ──────────────────────────────────────
    extension: str = ".spfx"
    trigger_filename: str | None = None

    # ── Model ────────────────────────────────────────────────────
    model_name: str = "Model"
    experiment_name: str | None = None
    load_warning_policy: LoadWarningPolicy = LoadWarningPolicy.REJECT

    # ── Run steps ────────────────────────────────────────────────
    delete_status_first: bool = False
    run_plan: bool = True
    run_risk_analysis: bool = False
    run_experiment: bool = False
    export_schedule: bool = False
    save_project: bool = True

    # ── Triggering ───────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=5.0, gt=0)

    # ── Engine ───────────────────────────────────────────────────
    engine: str | None = Field(
        default=None,
        description="Dotted path 'package.module:factory' returning a ComputeEngine",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("extension")
    @classmethod
    def _normalize_extension(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("extension must not be empty")
        if value.startswith("*"):
            value = value[1:]
        if not value.startswith("."):
            value = "." + value
        return value.lower()

    @field_validator("model_name")
    @classmethod
    def _default_model_name(cls, value: str) -> str:
        return value.strip() or "Model"

    @field_validator("experiment_name", "trigger_filename")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def resolve(self, path: Path) -> Path:
        """Resolve a folder or file setting against the root folder."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return Path(self.root_folder).expanduser() / path

    @property
    def status_path(self) -> Path:
        return self.resolve(self.status_file or Path("status.txt"))

    @property
    def export_path(self) -> Path:
        return self.resolve(self.export_file or Path("ScheduleExport.xml"))

    @property
    def override_path(self) -> Path | None:
        return self.resolve(self.override_file) if self.override_file else None
