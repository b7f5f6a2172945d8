"""
Logging configuration using structlog for structured, JSON-based logging.

Standard output is reserved for the git credential protocol, so log events
are written to stderr or, when a diagnostic log file is configured, appended
to that file. Every event passes through the secret redaction processor.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, TextIO

import structlog

from git_app_auth.utils.redaction import redact_event_fields


def _open_log_file(log_file: Path) -> TextIO:
    """Open the diagnostic log for appending with owner-only permissions."""
    log_file = log_file.expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    fd = os.open(log_file, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
    return os.fdopen(fd, "a", encoding="utf-8")


def configure_logging(log_level: str = "WARNING", log_file: Path | None = None) -> None:
    """Configure structured logging with JSON output.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Ignored when ``log_file`` is set; the file receives DEBUG and up.
        log_file: Optional diagnostic log file. When omitted, events go to stderr.
    """
    if log_file is not None:
        sink = _open_log_file(log_file)
        log_level = "DEBUG"
    else:
        sink = sys.stderr

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_event_fields,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelNamesMapping()[log_level.upper()]),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sink),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__ from calling module)

    Returns:
        A structlog logger instance

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("credential_flow_start", operation="get", host="github.com")
    """
    return structlog.get_logger(name)
