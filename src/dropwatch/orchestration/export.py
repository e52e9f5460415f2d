"""Schedule export: resource usage joined with risk-target results."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from dropwatch.core.tabular import Table, write_table_xml
from dropwatch.engine.protocol import Model
from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)

SCHEDULE_COLUMNS = ["OwnerName", "Probability", "ResourceName", "StartTime", "EndTime"]
SCHEDULE_TABLE_NAME = "ResourceUsageLog"


def _sortable(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.replace(tzinfo=None).isoformat(timespec="seconds")


def build_schedule_table(model: Model) -> Table:
    """One row per resource usage entry.

    Probability comes from the target result with the same owner id. Entries
    without a matching target get an empty probability.
    """
    probabilities = {
        target.owner_id: target.risk_within_bounds_probability
        for target in model.target_results()
    }
    table = Table(columns=list(SCHEDULE_COLUMNS))
    for entry in model.resource_usage_log():
        probability = probabilities.get(entry.owner_id) if entry.owner_id else None
        table.append([
            entry.owner_name,
            "" if probability is None else str(probability),
            entry.resource_name or "",
            _sortable(entry.start_time),
            _sortable(entry.end_time),
        ])
    return table


def export_schedule(model: Model, path: Path) -> int:
    """Write the schedule table to ``path``, replacing any existing file.

    Returns:
        Number of rows written.
    """
    path = Path(path)
    path.unlink(missing_ok=True)
    table = build_schedule_table(model)
    write_table_xml(table, path, table_name=SCHEDULE_TABLE_NAME)
    logger.info("export.written", path=str(path), rows=len(table))
    return len(table)
