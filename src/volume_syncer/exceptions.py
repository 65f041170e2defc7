"""
volume-syncer exception hierarchy.

All domain-specific exceptions inherit from VolumeSyncerError. Failures of a
sync attempt inherit from SyncError and carry an ``ErrorKind`` so the
orchestrator can record *what* went wrong without inspecting messages.

Hierarchy::

    VolumeSyncerError
    ├── ConfigurationError        - config loading, parsing, validation
    └── SyncError                 - any failure of a sync request or attempt
        ├── ValidationError       - bad/contradictory input, no I/O attempted
        │   └── UnsupportedSourceError - unknown source type
        ├── AuthError             - credential rejected by remote
        ├── NetworkError          - connect/transfer failure
        │   └── CommandError      - external executable exited non-zero
        ├── FilesystemError       - local directory/file operation failure
        │   └── ReplaceRollbackError - swap failed AND rollback failed
        ├── SyncTimeoutError      - deadline exceeded
        └── UnknownSyncError      - unclassified
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of sync failures."""

    VALIDATION = "validation"
    AUTH = "authentication"
    NETWORK = "network"
    FILESYSTEM = "filesystem"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class VolumeSyncerError(Exception):
    """Base exception for all volume-syncer errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(VolumeSyncerError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Sync --------------------------------------------------------------------


class SyncError(VolumeSyncerError):
    """Base class for sync failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, details: dict | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, details=details)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ValidationError(SyncError):
    """Raised when a request is malformed or contradictory."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class UnsupportedSourceError(ValidationError):
    """Raised when the source ``type`` is not one of the known kinds."""

    def __init__(self, source_type: str) -> None:
        super().__init__(f"unsupported source type: {source_type}", field="source.type")
        self.source_type = source_type


class AuthError(SyncError):
    """Raised when the remote rejects the supplied credentials."""

    kind = ErrorKind.AUTH


class NetworkError(SyncError):
    """Raised when connecting to or transferring from the remote fails."""

    kind = ErrorKind.NETWORK


class CommandError(NetworkError):
    """Raised when an external executable exits with a non-zero status.

    ``command`` and ``stderr`` are already credential-masked.
    """

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        summary = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(
            f"command `{' '.join(command)}` exited with status {returncode}: {summary}",
            details={"command": command, "returncode": returncode},
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class FilesystemError(SyncError):
    """Raised when a local directory or file operation fails."""

    kind = ErrorKind.FILESYSTEM


class ReplaceRollbackError(FilesystemError):
    """Raised when a directory swap failed and the backup could not be restored.

    The original content survives at ``backup``; manual intervention is required.
    """

    def __init__(self, target: str, backup: str, *, cause: BaseException | None = None) -> None:
        super().__init__(
            f"failed to move staged tree into {target} and failed to restore backup; "
            f"original content is preserved at {backup}, manual intervention required",
            details={"target": target, "backup": backup},
            cause=cause,
        )
        self.target = target
        self.backup = backup


class SyncTimeoutError(SyncError, TimeoutError):
    """Raised when a sync attempt exceeds its deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, timeout: float | None = None) -> None:
        super().__init__(message, details={"timeout": timeout} if timeout is not None else None)
        self.timeout = timeout


class UnknownSyncError(SyncError):
    """Raised for failures that fit no other category."""

    kind = ErrorKind.UNKNOWN
