"""Run orchestration: override import, the step sequence, results export."""

from dropwatch.orchestration.export import build_schedule_table, export_schedule
from dropwatch.orchestration.importer import (
    ExceptionRow,
    ImportResult,
    import_overrides,
    load_override_table,
)
from dropwatch.orchestration.runner import (
    RunOrchestrator,
    RunStep,
    RunVerdict,
    StepRecord,
    VerdictStatus,
)

__all__ = [
    "ExceptionRow",
    "ImportResult",
    "RunOrchestrator",
    "RunStep",
    "RunVerdict",
    "StepRecord",
    "VerdictStatus",
    "build_schedule_table",
    "export_schedule",
    "import_overrides",
    "load_override_table",
]
