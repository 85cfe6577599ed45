"""
Structured JSON logging utilities.

Log lines are emitted as single-line JSON objects so a chat client running
headless (terminal, container, CI) produces machine-readable output. Session
context (room_id, username) travels on each record through
:class:`SessionLoggerAdapter`.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line carries:
    - timestamp: creation time of the record, ISO 8601 in UTC
    - level, logger, message
    - exception: formatted traceback, when the record has one
    - Any context fields passed through ``extra`` (room_id, username, ...)

    Args:
        include_location: Also emit module, function and line number
    """

    def __init__(self, include_location: bool = False) -> None:
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_location:
            entry["location"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(self._context_fields(record))
        return json.dumps(entry, default=str)

    @staticmethod
    def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            fields[key] = value
        return fields


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = None,
    include_location: bool = False,
) -> logging.Logger:
    """
    Route a logger's output to stderr as JSON lines.

    Calling this again replaces the handler instead of adding a second one.

    Args:
        level: Logging level (default: INFO)
        logger_name: Specific logger to configure (default: root logger)
        include_location: Add source location to every line

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    # stdout belongs to the terminal presentation
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredJsonFormatter(include_location=include_location))

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class SessionLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds session context to all log messages.

    The extra mapping is read on every call, so updating it (for example
    when the session joins a new room) changes the context of later records.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add extra context to log record."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
