"""
dropwatch structured logging.

This module provides:
- Structured logging with structlog
- Trigger / work item / step context propagation via contextvars
- Timing of run steps

Usage:
    from dropwatch.framework.logging import get_logger, configure_logging, log_step, push_context

    configure_logging()
    log = get_logger(__name__)

    token = push_context(work_item="Plant.spfx")
    try:
        with log_step("run_plan"):
            model.run_plan(allow_design_errors=False)
    finally:
        token.restore()
"""

from dropwatch.framework.logging.config import configure_logging
from dropwatch.framework.logging.context import (
    LogContext,
    clear_context,
    get_context,
    get_logger,
    push_context,
)
from dropwatch.framework.logging.timing import TimingResult, log_step

__all__ = [
    # Configuration
    "configure_logging",
    # Context
    "get_logger",
    "clear_context",
    "get_context",
    "push_context",
    "LogContext",
    # Timing
    "log_step",
    "TimingResult",
]
