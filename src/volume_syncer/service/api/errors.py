"""
API error definitions and exception classes.

Provides consistent error bodies across all endpoints.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from volume_syncer.exceptions import ValidationError


def utc_timestamp() -> str:
    """RFC 3339 UTC timestamp, e.g. ``2024-05-01T12:00:00Z``."""
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class ErrorCode(str, Enum):
    """Standard API error codes."""

    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BUSY = "BUSY"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(Exception):
    """
    Base API exception with structured error response.

    Usage:
        raise APIError(
            code=ErrorCode.VALIDATION_ERROR,
            message="invalid request",
            status=400,
            details="ssh source requires 'host'",
        )
    """

    label = "error"

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int = 400,
        details: Any = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details
        self.extra = extra or {}

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert to API response format."""
        body: dict[str, Any] = {"status": self.label, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        body["timestamp"] = utc_timestamp()
        if request_id:
            body["request_id"] = request_id
        return body


class InvalidRequestFormatError(APIError):
    """Body is not a JSON object."""

    def __init__(self, details: str):
        super().__init__(code=ErrorCode.INVALID_REQUEST, message="invalid request format", status=400, details=details)


class InvalidRequestError(APIError):
    """Body parsed but failed validation."""

    def __init__(self, error: ValidationError):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message="invalid request",
            status=400,
            details=error.message,
            extra={"field": error.field} if error.field else None,
        )


class BusyError(APIError):
    """A sync is already running."""

    label = "busy"

    def __init__(self) -> None:
        super().__init__(code=ErrorCode.BUSY, message="syncing in progress already", status=503)
