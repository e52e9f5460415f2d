"""Core primitives: run context, settings, errors, status log, file lifecycle, tables.

Module Map::

    errors.py       Structured error hierarchy (DropwatchError and subclasses)
    settings.py     DropwatchSettings (pydantic-settings, DROPWATCH_ env vars)
    context.py      RunContext (frozen) and Stage
    status_log.py   Operator status file writer
    lifecycle.py    Incoming → Processing → Success/Error moves
    tabular.py      Delimited text reader and XML table writer
"""

from dropwatch.core.context import RunContext, Stage
from dropwatch.core.errors import (
    ConfigurationError,
    DropwatchError,
    EngineFailure,
    ErrorCategory,
    ErrorContext,
    ExperimentNotFound,
    FileLifecycleError,
    LoadRejected,
    MalformedInput,
    ModelNotFound,
    NotFound,
)
from dropwatch.core.lifecycle import FileLifecycle, move_to_folder
from dropwatch.core.settings import DropwatchSettings, LoadWarningPolicy
from dropwatch.core.status_log import StatusLog
from dropwatch.core.tabular import RejectedLine, Table, parse_table, read_table

__all__ = [
    "ConfigurationError",
    "DropwatchError",
    "DropwatchSettings",
    "EngineFailure",
    "ErrorCategory",
    "ErrorContext",
    "ExperimentNotFound",
    "FileLifecycle",
    "FileLifecycleError",
    "LoadRejected",
    "LoadWarningPolicy",
    "MalformedInput",
    "ModelNotFound",
    "NotFound",
    "RejectedLine",
    "RunContext",
    "Stage",
    "StatusLog",
    "Table",
    "move_to_folder",
    "parse_table",
    "read_table",
]
