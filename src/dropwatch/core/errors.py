"""
Structured error types for dropwatch.

Every failure a drop-folder run can meet is one of a handful of typed errors.
Each carries a category (used for routing in the structured log), a context
describing where in the pipeline it happened, and the chained cause.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      DropwatchError                           │
        │            (category, context, cause)                         │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConfigurationError   MalformedInput      EngineFailure       │
        │  (CONFIG, fatal)      (PARSE)             (ENGINE)            │
        │                                                │              │
        │                                          ModelNotFound        │
        │                                          ExperimentNotFound   │
        │                                          LoadRejected         │
        │                                                               │
        │  FileLifecycleError                                           │
        │  (STORAGE)                                                    │
        │       │                                                       │
        │   NotFound                                                    │
        └──────────────────────────────────────────────────────────────┘

Propagation policy:
    - ConfigurationError is raised at startup and terminates the process.
    - Everything else is raised inside one run, caught at the orchestration
      boundary, written to the status log and turned into a FAULTED verdict.

Usage:
    from dropwatch.core.errors import EngineFailure

    try:
        model.run_plan(allow_design_errors=False)
    except Exception as e:
        raise EngineFailure("Plan failed", cause=e).with_context(step="RUN_PLAN")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification in logs."""

    CONFIG = "CONFIG"  # Missing folder, bad setting
    PARSE = "PARSE"  # Malformed override data
    ENGINE = "ENGINE"  # Compute engine raised or refused
    STORAGE = "STORAGE"  # Move/delete on the filesystem
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        work_item: File name of the WorkItem being processed
        step: Run step that was executing (see RunStep)
        stage: Lifecycle stage of the file (Incoming, Processing, ...)
        path: Filesystem path involved
        metadata: Additional key-value pairs
    """

    work_item: str | None = None
    step: str | None = None
    stage: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["work_item", "step", "stage", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DropwatchError(Exception):
    """
    Base exception for all dropwatch errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` is also set as ``__cause__`` so tracebacks show
    the chain.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DropwatchError:
        """Add context fields, returning self for chaining."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        ctx = self.context.to_dict()
        if ctx:
            result["context"] = ctx
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ConfigurationError(DropwatchError):
    """Missing required folder/file or invalid setting at startup. Fatal."""

    default_category = ErrorCategory.CONFIG


class MalformedInput(DropwatchError):
    """A delimited row does not have the header's shape."""

    default_category = ErrorCategory.PARSE

    def __init__(self, message: str, *, line_number: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.line_number = line_number
        if line_number is not None:
            self.context.metadata["line_number"] = line_number


class EngineFailure(DropwatchError):
    """Any exception raised by the compute engine during a run."""

    default_category = ErrorCategory.ENGINE


class ModelNotFound(EngineFailure):
    """The configured model is not part of the loaded project."""


class ExperimentNotFound(EngineFailure):
    """The configured experiment is not part of the model."""


class LoadRejected(EngineFailure):
    """The project loaded with warnings and the policy rejects that."""

    def __init__(self, message: str, *, warnings: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.warnings = list(warnings or [])


class FileLifecycleError(DropwatchError):
    """Moving or deleting a WorkItem failed."""

    default_category = ErrorCategory.STORAGE


class NotFound(FileLifecycleError):
    """Source file or destination folder of a move does not exist."""


def wrap_engine_error(exc: BaseException, step: str) -> DropwatchError:
    """Return ``exc`` unchanged if already typed, else wrap it as EngineFailure."""
    if isinstance(exc, DropwatchError):
        if exc.context.step is None:
            exc.context.step = step
        return exc
    return EngineFailure(str(exc) or type(exc).__name__, cause=exc).with_context(step=step)
