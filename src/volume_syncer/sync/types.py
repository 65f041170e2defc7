"""
Sync request data model.

A request body ``{"source": {"type", "details"}, "target": {"path"}, "timeout"?}``
is parsed into a ``SyncJob``. The per-kind ``details`` mapping is kept opaque
here and turned into one of the typed ``*Details`` records by the factory.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from volume_syncer.exceptions import ErrorKind, UnsupportedSourceError, ValidationError
from volume_syncer.utils.durations import parse_duration


class SourceKind(str, Enum):
    """Wire tag of a sync source."""

    SSH = "ssh"
    GIT = "git"
    HTTP = "http"
    S3 = "s3"

    @classmethod
    def parse(cls, value: Any) -> SourceKind:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("source type is required", field="source.type")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedSourceError(value) from None


@dataclass(frozen=True)
class SourceSpec:
    kind: SourceKind
    details: Mapping[str, Any]

    @classmethod
    def from_payload(cls, data: Any) -> SourceSpec:
        if not isinstance(data, Mapping):
            raise ValidationError("source must be an object", field="source")
        kind = SourceKind.parse(data.get("type"))
        details = data.get("details")
        if details is None:
            raise ValidationError("source details are required", field="source.details")
        if not isinstance(details, Mapping):
            raise ValidationError("source details must be an object", field="source.details")
        return cls(kind=kind, details=dict(details))


@dataclass(frozen=True)
class TargetSpec:
    path: Path

    def __post_init__(self) -> None:
        if not str(self.path) or not self.path.is_absolute():
            raise ValidationError(f"target path must be absolute, got {str(self.path)!r}", field="target.path")

    @classmethod
    def from_payload(cls, data: Any) -> TargetSpec:
        if not isinstance(data, Mapping):
            raise ValidationError("target must be an object", field="target")
        path = data.get("path")
        if not isinstance(path, str) or not path.strip():
            raise ValidationError("target path is required", field="target.path")
        return cls(path=Path(path.strip()))


@dataclass(frozen=True)
class SyncJob:
    """One sync request, consumed by exactly one strategy execution."""

    source: SourceSpec
    target: TargetSpec
    timeout: float
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def from_payload(cls, payload: Any, default_timeout: float) -> SyncJob:
        """
        Parse a request body.

        Args:
            payload: Decoded JSON/YAML request body
            default_timeout: Seconds to use when the body sets no timeout

        Returns:
            SyncJob

        Raises:
            ValidationError: If a top-level field is missing or malformed
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("request body must be an object")
        source = SourceSpec.from_payload(payload.get("source"))
        target = TargetSpec.from_payload(payload.get("target"))

        raw_timeout = payload.get("timeout")
        if raw_timeout is None or raw_timeout == "":
            timeout = default_timeout
        else:
            try:
                timeout = parse_duration(raw_timeout)
            except ValueError as e:
                raise ValidationError(str(e), field="timeout") from None
        if timeout <= 0:
            raise ValidationError("timeout must be positive", field="timeout")

        return cls(source=source, target=target, timeout=timeout)


# --- Typed details -----------------------------------------------------------


@dataclass(frozen=True)
class SSHDetails:
    host: str
    user: str
    path: str
    port: int = 22
    password: str | None = field(default=None, repr=False)
    key_path: str | None = None
    private_key: bytes | None = field(default=None, repr=False)

    @property
    def remote(self) -> str:
        return f"{self.user}@{self.host}"


@dataclass(frozen=True)
class GitDetails:
    url: str
    branch: str | None = None
    depth: int = 1
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class HTTPDetails:
    url: str


@dataclass(frozen=True)
class S3Details:
    endpoint_url: str
    bucket: str
    path: str
    access_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    region: str
    force_path_style: bool | None = None
    disable_ssl: bool | None = None


# --- Outcomes ----------------------------------------------------------------


class AdmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    BUSY = "busy"
    INVALID = "invalid"


@dataclass(frozen=True)
class Admission:
    """Synchronous answer to a sync request."""

    status: AdmissionStatus
    job_id: str | None = None
    error: ValidationError | None = None

    @property
    def accepted(self) -> bool:
        return self.status is AdmissionStatus.ACCEPTED


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class JobOutcome:
    """How an accepted job ended. Kept in memory for logging and inspection only."""

    job_id: str
    kind: SourceKind
    target: Path
    status: JobStatus
    started_at: datetime
    finished_at: datetime
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
