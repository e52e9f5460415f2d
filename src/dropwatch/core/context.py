"""
RunContext: the immutable configuration of one service instance.

Built once at startup from :class:`DropwatchSettings`, validated against the
filesystem, then read (never written) by every run. Because it is frozen it
needs no synchronization between the timer, watcher and worker threads.

Folder layout under the root::

    <root>/
    ├── Incoming/      watched for project files
    ├── Processing/    the project while it runs
    ├── Success/       projects that ran cleanly
    ├── Error/         projects that faulted, and foreign files
    └── status.txt     operator status log (location configurable)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from dropwatch.core.errors import ConfigurationError
from dropwatch.core.settings import DropwatchSettings, LoadWarningPolicy


class Stage(str, Enum):
    """Lifecycle stage of a WorkItem, i.e. the folder it lives in."""

    INCOMING = "Incoming"
    PROCESSING = "Processing"
    SUCCESS = "Success"
    ERROR = "Error"


DEFAULT_MODEL_NAME = "Model"
DEFAULT_EXPERIMENT_NAME = "Experiment1"


@dataclass(frozen=True)
class RunContext:
    """Everything needed to process drop-folder work items."""

    incoming_dir: Path
    processing_dir: Path
    success_dir: Path
    error_dir: Path
    status_path: Path
    export_path: Path
    override_path: Path | None = None

    model_name: str = DEFAULT_MODEL_NAME
    experiment_name: str | None = None

    extension: str = ".spfx"
    trigger_filename: str | None = None
    load_warning_policy: LoadWarningPolicy = LoadWarningPolicy.REJECT
    poll_interval_seconds: float = 5.0

    delete_status_first: bool = False
    run_plan: bool = True
    run_risk_analysis: bool = False
    run_experiment: bool = False
    export_schedule: bool = False
    save_project: bool = True

    @classmethod
    def from_settings(cls, settings: DropwatchSettings) -> RunContext:
        """Build and validate a context. Raises ConfigurationError."""
        root = Path(settings.root_folder).expanduser()
        if not root.is_dir():
            raise ConfigurationError(
                f"Root Folder={root} not found."
            ).with_context(path=str(root))

        context = cls(
            incoming_dir=settings.resolve(settings.incoming_folder),
            processing_dir=settings.resolve(settings.processing_folder),
            success_dir=settings.resolve(settings.success_folder),
            error_dir=settings.resolve(settings.error_folder),
            status_path=settings.status_path,
            export_path=settings.export_path,
            override_path=settings.override_path,
            model_name=settings.model_name,
            experiment_name=settings.experiment_name,
            extension=settings.extension,
            trigger_filename=settings.trigger_filename,
            load_warning_policy=settings.load_warning_policy,
            poll_interval_seconds=settings.poll_interval_seconds,
            delete_status_first=settings.delete_status_first,
            run_plan=settings.run_plan,
            run_risk_analysis=settings.run_risk_analysis,
            run_experiment=settings.run_experiment,
            export_schedule=settings.export_schedule,
            save_project=settings.save_project,
        )
        context.validate()
        return context

    def validate(self) -> None:
        """Check that all four stage folders exist and are distinct."""
        folders = {stage: self.folder_for(stage) for stage in Stage}
        for stage, folder in folders.items():
            if not folder.is_dir():
                raise ConfigurationError(
                    f"{stage.value} folder={folder} not found."
                ).with_context(stage=stage.value, path=str(folder))

        resolved = [folder.resolve() for folder in folders.values()]
        if len(set(resolved)) != len(resolved):
            raise ConfigurationError(
                "Incoming, Processing, Success and Error folders must be distinct."
            )

        status_folder = self.status_path.parent
        if not status_folder.is_dir():
            raise ConfigurationError(
                f"Status Folder={status_folder} not found."
            ).with_context(path=str(status_folder))

    # === Paths ===

    def folder_for(self, stage: Stage) -> Path:
        return {
            Stage.INCOMING: self.incoming_dir,
            Stage.PROCESSING: self.processing_dir,
            Stage.SUCCESS: self.success_dir,
            Stage.ERROR: self.error_dir,
        }[stage]

    def path_in(self, stage: Stage, filename: str) -> Path:
        return self.folder_for(stage) / filename

    def processing_path(self, filename: str) -> Path:
        return self.path_in(Stage.PROCESSING, filename)

    @property
    def effective_experiment_name(self) -> str:
        return self.experiment_name or DEFAULT_EXPERIMENT_NAME

    @property
    def watch_pattern(self) -> str:
        """Glob for the watcher, e.g. ``*.spfx`` or the trigger file name."""
        return self.trigger_filename or f"*{self.extension}"

    # === Work item selection ===

    def matches(self, path: Path | str) -> bool:
        """True when ``path`` names a qualifying work item (case-insensitive)."""
        name = Path(path).name
        if self.trigger_filename:
            return name.lower() == self.trigger_filename.lower()
        return name.lower().endswith(self.extension.lower()) and len(name) > len(self.extension)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for logging and the CLI."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, Enum):
                value = value.value
            result[key] = value
        return result
