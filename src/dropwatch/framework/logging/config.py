"""
Logging configuration.

Provides a single entry point for configuring structured logging.

Configuration is read from arguments or environment variables:
- DROPWATCH_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- DROPWATCH_LOG_FORMAT: json | console (default: console)

Usage:
    # Configure at service startup
    from dropwatch.framework.logging import configure_logging
    configure_logging()

    # Or with explicit settings
    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from dropwatch.framework.logging.context import add_context_processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | str | None = None,
    format: Literal["json", "console"] | str | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the service.

    Should be called once at startup (CLI entry). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides DROPWATCH_LOG_LEVEL env var)
        format: Output format (overrides DROPWATCH_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("DROPWATCH_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("DROPWATCH_LOG_FORMAT", "console")).lower()

    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        log_level = "INFO"

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 timestamps
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # Work item / step / trigger from contextvars
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )

    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(logging.INFO, getattr(logging, log_level)))
    logging.getLogger("dropwatch").setLevel(getattr(logging, log_level))

    _configured = True

