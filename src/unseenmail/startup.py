"""Startup utilities: logging setup.

Console output is human-readable; an optional log file receives one JSON
object per line with rotation.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import conventions

logger = logging.getLogger(__name__)

# Libraries that are chatty at INFO; only surfaced with --verbose.
_NOISY_LOGGERS = ("aioimaplib", "httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured file logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> None:
    """Configure logging: human-readable console, optional JSON file.

    Args:
        log_file: Path for the JSON log file; no file logging when None.
        level: Logging level for both handlers.
    """
    root = logging.getLogger()
    root.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter(
            conventions.CONSOLE_LOG_FORMAT,
            datefmt=conventions.CONSOLE_DATE_FORMAT,
        )
    )
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=conventions.LOG_MAX_BYTES,
            backupCount=conventions.LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    quiet = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
