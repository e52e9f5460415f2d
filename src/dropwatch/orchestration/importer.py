"""
Override import: merge resource downtime rows into a model before a run.

The override file has columns ``ResourceName, StartTime, EndTime, Category``
(header names are not checked; cells are read by position). For a model that
declares Resources, every declared resource has its override list cleared and
then repopulated from the rows naming it. A resource with no rows therefore
ends up with no overrides. A model without a Resources declaration is left
alone.

Rows that name an unknown resource, are too short, or carry unparseable
times are skipped and counted. They never fail the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from dropwatch.core.errors import MalformedInput
from dropwatch.core.status_log import StatusLog
from dropwatch.core.tabular import Table, read_table
from dropwatch.engine.protocol import Model, OverrideRow
from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)

RESOURCE_NAME, START_TIME, END_TIME, CATEGORY = range(4)
MIN_CELLS = 4

# Tried in order after ISO 8601.
TIMESTAMP_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
)


@dataclass(frozen=True)
class ExceptionRow:
    """One parsed row of the override file."""

    resource_name: str
    start_time: datetime
    end_time: datetime
    category: str

    def to_override(self) -> OverrideRow:
        return OverrideRow(start_time=self.start_time, end_time=self.end_time, category=self.category)


@dataclass
class ImportResult:
    """Outcome of one import: rows applied, rows skipped, resources cleared."""

    applied: int = 0
    skipped: int = 0
    cleared: list[str] = field(default_factory=list)
    resources_declared: bool = True


def parse_timestamp(value: str) -> datetime:
    """Parse an override timestamp. Raises ValueError."""
    text = value.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized timestamp {value!r}")


def parse_exception_row(cells: list[str]) -> ExceptionRow:
    """Build an ExceptionRow from raw cells. Raises ValueError."""
    if len(cells) < MIN_CELLS:
        raise ValueError(f"expected {MIN_CELLS} cells, found {len(cells)}")
    return ExceptionRow(
        resource_name=cells[RESOURCE_NAME].strip(),
        start_time=parse_timestamp(cells[START_TIME]),
        end_time=parse_timestamp(cells[END_TIME]),
        category=cells[CATEGORY].strip(),
    )


def import_overrides(model: Model, table: Table, *, status_log: StatusLog | None = None) -> ImportResult:
    """Replace the model's resource overrides with the rows of ``table``.

    Returns:
        ImportResult. ``applied`` is the number of rows inserted.
    """
    overrides = model.resource_overrides()
    if overrides is None:
        if status_log is not None:
            status_log.record("Info: Resources table does not exist in model. Not used.")
        logger.info("importer.no_resources", model=model.name)
        return ImportResult(resources_declared=False)

    result = ImportResult()
    declared = list(overrides.resource_names())

    for name in declared:
        overrides.clear(name)
        result.cleared.append(name)

    known = set(declared)
    for index, cells in enumerate(table.rows, start=1):
        try:
            row = parse_exception_row(cells)
        except ValueError as e:
            result.skipped += 1
            logger.warning("importer.row_skipped", row=index, reason=str(e))
            continue

        if row.resource_name not in known:
            result.skipped += 1
            logger.debug("importer.unknown_resource", row=index, resource=row.resource_name)
            continue

        overrides.add(row.resource_name, row.to_override())
        result.applied += 1

    result.skipped += len(table.rejected)
    logger.info(
        "importer.done",
        model=model.name,
        applied=result.applied,
        skipped=result.skipped,
        cleared=len(result.cleared),
    )
    if status_log is not None:
        status_log.record(
            f"Info: Imported {result.applied} resource exception(s). Skipped={result.skipped}."
        )
    return result


def load_override_table(path: Path | None, *, status_log: StatusLog | None = None) -> Table | None:
    """Read and consume the override file.

    Returns None when no path is configured, the file is absent, has no
    header line, or cannot be read or decoded. A present file is deleted
    after the attempt either way, so one bad file never faults later runs.
    Malformed lines are skipped, not raised.
    """
    if path is None:
        return None
    path = Path(path)
    if not path.is_file():
        logger.debug("importer.no_override_file", path=str(path))
        return None

    if status_log is not None:
        status_log.record(f"Reading Resource Exceptions File={path}")
    try:
        table = read_table(path, on_malformed="skip")
    except MalformedInput as e:
        # An empty file carries no overrides; it is still consumed below.
        logger.warning("importer.empty_override_file", path=str(path), error=e.message)
        table = None
    except (UnicodeDecodeError, OSError) as e:
        logger.warning("importer.unreadable_override_file", path=str(path), error=str(e))
        if status_log is not None:
            status_log.record(f"Warning: Resource Exceptions File={path} could not be read. Error={e}")
        table = None

    try:
        path.unlink()
    except OSError as e:
        logger.warning("importer.delete_failed", path=str(path), error=str(e))
    else:
        if status_log is not None:
            status_log.record(f"Deleted Resource Exceptions File={path}")
    return table
