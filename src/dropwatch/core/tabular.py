"""
Delimited-text tables.

Reads the override-data file into an in-memory :class:`Table` and writes
result tables to a structured XML file.

Manifesto:
    The override file is produced by planners with spreadsheet exports, so
    the format is the simplest thing that works: first line holds column
    names, every other line is one row, cells split on a fixed delimiter.

    - **Strict split:** no quoting or escaping. A cell cannot contain the
      delimiter.
    - **Shape checked:** a row that does not have exactly one cell per
      column is MalformedInput. It is never padded.
    - **Caller consumes:** reading does not delete the file; callers that
      treat the file as a one-shot message delete it after a good read.

Architecture:
    ::

        read_table(path)                 write_table_xml(table, path)
             │                                    ▲
             ▼                                    │
        parse_table(text) ──► Table(columns, rows, rejected)
             │
             ├── on_malformed="raise" → MalformedInput(line_number)
             └── on_malformed="skip"  → RejectedLine appended, row dropped

Examples:
    >>> table = parse_table("A,B,C\\n1,2,3\\n4,5,6\\n")
    >>> table.columns
    ['A', 'B', 'C']
    >>> table.rows
    [['1', '2', '3'], ['4', '5', '6']]
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from dropwatch.core.errors import MalformedInput
from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)

OnMalformed = Literal["raise", "skip"]


@dataclass(frozen=True)
class RejectedLine:
    """A data line that did not match the header shape."""

    line_number: int
    raw: str
    reason: str


@dataclass
class Table:
    """Ordered named columns plus ordered rows of string cells."""

    columns: list[str]
    rows: list[list[str]] = field(default_factory=list)
    rejected: list[RejectedLine] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[list[str]]:
        return iter(self.rows)

    def records(self) -> list[dict[str, str]]:
        """Rows as dicts keyed by column name."""
        return [dict(zip(self.columns, row)) for row in self.rows]

    def append(self, row: list[str]) -> None:
        """Append a row, enforcing the column count."""
        if len(row) != len(self.columns):
            raise MalformedInput(
                f"Row has {len(row)} cells, table has {len(self.columns)} columns"
            )
        self.rows.append(list(row))


def parse_table(
    text: str,
    *,
    delimiter: str = ",",
    on_malformed: OnMalformed = "raise",
    source: str | None = None,
) -> Table:
    """Parse delimited text into a Table.

    Blank lines are ignored. ``\\r\\n`` line endings are accepted.

    Raises:
        MalformedInput: no header line, or (with on_malformed="raise") a
            row whose cell count differs from the header.
    """
    table: Table | None = None

    for line_number, raw in enumerate(text.split("\n"), start=1):
        line = raw.rstrip("\r")
        if not line.strip():
            continue

        cells = line.split(delimiter)

        if table is None:
            table = Table(columns=cells)
            continue

        if len(cells) != len(table.columns):
            reason = (
                f"expected {len(table.columns)} fields, found {len(cells)}"
            )
            if on_malformed == "raise":
                raise MalformedInput(
                    f"Line {line_number}: {reason}", line_number=line_number
                ).with_context(path=source)
            logger.warning(
                "tabular.row_rejected",
                source=source,
                line_number=line_number,
                reason=reason,
            )
            table.rejected.append(RejectedLine(line_number=line_number, raw=line, reason=reason))
            continue

        table.rows.append(cells)

    if table is None:
        raise MalformedInput("No header line found").with_context(path=source)

    return table


def read_table(
    path: Path | str,
    *,
    delimiter: str = ",",
    on_malformed: OnMalformed = "raise",
    encoding: str = "utf-8-sig",
) -> Table:
    """Read a delimited text file into a Table.

    The default encoding strips a leading BOM, which spreadsheet exports
    often carry.

    Raises:
        FileNotFoundError: the file does not exist.
        MalformedInput: see :func:`parse_table`.
    """
    path = Path(path)
    text = path.read_text(encoding=encoding)
    return parse_table(text, delimiter=delimiter, on_malformed=on_malformed, source=str(path))


def write_table_xml(
    table: Table,
    path: Path | str,
    *,
    table_name: str,
    dataset_name: str = "NewDataSet",
) -> Path:
    """Write a Table as XML, one element per row and one child per cell.

    Layout::

        <NewDataSet>
          <ResourceUsageLog>
            <OwnerName>Order-1</OwnerName>
            ...
          </ResourceUsageLog>
        </NewDataSet>

    Empty cells are written as empty elements so every row carries every
    column.
    """
    path = Path(path)
    root = ET.Element(dataset_name)
    for record in table.records():
        row_el = ET.SubElement(root, table_name)
        for column, value in record.items():
            cell = ET.SubElement(row_el, column)
            cell.text = value
    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")
    tree.write(path, encoding="utf-8", xml_declaration=True)
    return path

