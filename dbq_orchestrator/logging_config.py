"""Utility to configure logging for the orchestrator.

This centralises logging configuration so all modules share the same
settings and makes it easy to switch between plain-text output for a
terminal and JSON logs that are simple to parse by log aggregation systems.

Environment variables supported
--------------------------------
LOG_FORMAT: "plain" (default) or "json"
LOG_LEVEL:  Python logging level name (default: INFO)
LOG_FILE:   Path to write logs to a rotating file (default: disabled).
"""

import logging
import os
import pathlib
from logging.handlers import RotatingFileHandler
from typing import Optional

from pythonjsonlogger import jsonlogger

_current_task_id: Optional[str] = None
_current_attempt: Optional[int] = None


class TaskContextFilter(logging.Filter):
    """Attach the current remote task id and attempt number to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.task_id = _current_task_id or "-"
        record.attempt = _current_attempt if _current_attempt is not None else "-"
        return True


def setup_logging(level: Optional[str] = None):
    """Configure root logger for the orchestrator.

    This should be called once as early as possible in the main entry
    point before any other modules configure logging.

    Args:
        level: Optional level name overriding LOG_LEVEL (e.g. from --verbose)
    """
    log_level_str = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_format = os.getenv("LOG_FORMAT", "plain").lower()

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(_build_formatter(log_format))
    handlers.append(stream_handler)

    # File handler with rotation, only when LOG_FILE is set
    log_file = os.getenv("LOG_FILE", "")
    if log_file:
        log_path = pathlib.Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(_build_formatter(log_format))
        handlers.append(file_handler)

    context_filter = TaskContextFilter()
    for handler in handlers:
        handler.addFilter(context_filter)

    # Apply configuration atomically via basicConfig
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    _configure_third_party_loggers()


def _configure_third_party_loggers():
    """Configure third-party library loggers to reduce noise."""

    # One line per poll request otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Task context
# ---------------------------------------------------------------------------

def set_current_task(task_id: Optional[str]):
    """Set the remote task id reported with subsequent log records."""
    global _current_task_id
    _current_task_id = task_id


def set_current_attempt(attempt: Optional[int]):
    """Set the submission attempt number reported with subsequent log records."""
    global _current_attempt
    _current_attempt = attempt


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_formatter(log_format: str) -> logging.Formatter:
    """Return a suitable Formatter instance for *log_format*."""

    if log_format == "json":
        # Fields are flattened for easy parsing
        return jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(task_id)s %(attempt)s %(message)s"
        )

    return logging.Formatter("%(asctime)s - %(levelname)s - [task %(task_id)s] %(message)s")
