"""
Structured logging for volume-syncer.

JSON-formatted logging with correlation IDs so that every line emitted while a
sync job runs can be tied back to the job that produced it.

Usage:
    from volume_syncer.observability import add_correlation_id

    with add_correlation_id(job.job_id):
        logger.info("Cloning repository")  # Will include correlation_id in log
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from volume_syncer.utils.masking import mask_credentials

# Context variable for correlation ID
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "thread",
        "threadName",
        "taskName",
        "correlation_id",
    )
)

_TRACEBACK_FORMATTER = logging.Formatter()


def get_correlation_id() -> str | None:
    """Get current correlation ID."""
    return _correlation_id.get()


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Iterator[str]:
    """
    Context manager to add correlation ID to logs.

    Args:
        correlation_id: Correlation ID (auto-generated if not provided)

    Yields:
        The correlation ID
    """
    cid = correlation_id or uuid.uuid4().hex[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Attach the current correlation ID to each record as ``record.correlation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


class SecretMaskingFilter(logging.Filter):
    """
    Mask credentials in the rendered message of every record.

    The message is rendered once (``msg % args``), masked, and stored back so
    that all formatters downstream see the masked text.
    Exception text is rendered and masked the same way into ``exc_text``,
    which ``logging.Formatter`` reuses instead of formatting the traceback again.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = mask_credentials(rendered)
        if masked != rendered or record.args:
            record.msg = masked
            record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = mask_credentials(_TRACEBACK_FORMATTER.formatException(record.exc_info))
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON-formatted log formatter with structured fields.

    Includes timestamp (ISO 8601), level, logger name, message, correlation ID
    (if set), exception info (if present) and extra fields.
    """

    def __init__(self, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": mask_credentials(str(record.exc_info[1])) if record.exc_info[1] else None,
                "traceback": mask_credentials(self.formatException(record.exc_info)),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter with optional correlation ID.

    Format: [timestamp] [level] [logger] [correlation_id] message
    """

    def __init__(self, include_correlation_id: bool = True):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.include_correlation_id = include_correlation_id

    def format(self, record: logging.LogRecord) -> str:
        parts = [f"[{self.formatTime(record)}]", f"[{record.levelname.ljust(8)}]", f"[{record.name}]"]

        if self.include_correlation_id:
            correlation_id = get_correlation_id()
            if correlation_id:
                parts.append(f"[{correlation_id}]")

        parts.append(record.getMessage())
        message = " ".join(parts)

        if record.exc_info:
            message += "\n" + mask_credentials(self.formatException(record.exc_info))

        return message
