"""Operator status log.

The status file is the operator-facing record of every run: one line per
event, prefixed with a local timestamp. Operators replay it to see which
branches a run took, so it is written even when structured logging goes to
a collector elsewhere.

Design
- Open, append one line, close on every call. No buffering across calls.
- Lines are truncated to ``max_length`` characters (timestamp included).
- Logging must never be the cause of a pipeline failure: I/O errors are
  reported on the structured logger and otherwise dropped.
- Every line is mirrored to the structured logger.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_LENGTH = 32_000
TIMESTAMP_FORMAT = "%Y-%m-%d (%b) %H:%M:%S"


def format_line(message: str, when: datetime, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Build one status line: ``<timestamp>: <message>``, truncated."""
    line = f"{when.strftime(TIMESTAMP_FORMAT)}: {message}"
    if len(line) > max_length:
        line = line[:max_length]
    return line


class StatusLog:
    """Append-only timestamped status writer.

    Example:
        >>> status = StatusLog(Path("/data/drop/status.txt"))
        >>> status.record("Run Plan? (True)")
        >>> status.read_lines()[-1]
        '2026-10-18 (Oct) 09:14:03: Run Plan? (True)'
    """

    def __init__(
        self,
        path: Path,
        *,
        max_length: int = DEFAULT_MAX_LENGTH,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.path = Path(path)
        self.max_length = max_length
        self._clock = clock

    def record(self, message: str) -> None:
        """Append one timestamped line to the status file."""
        line = format_line(str(message), self._clock(), self.max_length)
        logger.info("status", status_message=message)
        try:
            with self.path.open("a", encoding="utf-8", newline="\n") as f:
                f.write(line)
                f.write("\n")
        except OSError as e:
            logger.warning("status_log.write_failed", path=str(self.path), error=str(e))

    def clear(self) -> None:
        """Delete the status file if present."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("status_log.delete_failed", path=str(self.path), error=str(e))

    def flush(self) -> None:
        """Explicit flush point at the end of a run."""
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.flush()
        except OSError as e:
            logger.warning("status_log.flush_failed", path=str(self.path), error=str(e))

    def read_lines(self, tail: int | None = None) -> list[str]:
        """Return the lines of the status file (all, or the last ``tail``)."""
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("status_log.read_failed", path=str(self.path), error=str(e))
            return []
        if tail is not None:
            return lines[-tail:] if tail > 0 else []
        return lines

    def record_warnings(self, header: str, warnings: list[str]) -> None:
        """Record a header line, then each warning numbered from 1."""
        self.record(header)
        for number, warning in enumerate(warnings, start=1):
            self.record(f"   Warning {number}: {warning}")
