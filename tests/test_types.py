"""
Tests for request parsing and the error taxonomy.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from volume_syncer.exceptions import (
    CommandError,
    ErrorKind,
    FilesystemError,
    NetworkError,
    ReplaceRollbackError,
    SyncError,
    SyncTimeoutError,
    UnsupportedSourceError,
    ValidationError,
)
from volume_syncer.sync.types import (
    GitDetails,
    JobOutcome,
    JobStatus,
    S3Details,
    SourceKind,
    SourceSpec,
    SSHDetails,
    SyncJob,
    TargetSpec,
)


@pytest.mark.unit
class TestErrorTaxonomy:
    def test_kinds(self):
        assert ValidationError("x").kind is ErrorKind.VALIDATION
        assert NetworkError("x").kind is ErrorKind.NETWORK
        assert FilesystemError("x").kind is ErrorKind.FILESYSTEM
        assert SyncTimeoutError("x").kind is ErrorKind.TIMEOUT
        assert SyncError("x").kind is ErrorKind.UNKNOWN

    def test_str_includes_kind(self):
        assert str(NetworkError("connection refused")) == "network: connection refused"

    def test_timeout_is_also_builtin_timeout(self):
        assert isinstance(SyncTimeoutError("late", timeout=1.0), TimeoutError)

    def test_command_error_summarizes_last_stderr_line(self):
        error = CommandError(["git", "fetch"], 128, "warning: x\nfatal: repository not found\n")
        assert isinstance(error, NetworkError)
        assert error.returncode == 128
        assert "fatal: repository not found" in error.message
        assert "warning: x" not in error.message

    def test_command_error_without_output(self):
        assert "no output" in CommandError(["rsync"], 23).message

    def test_rollback_error_names_backup(self):
        error = ReplaceRollbackError("/data/repo", "/data/repo.backup-1")
        assert isinstance(error, FilesystemError)
        assert "/data/repo.backup-1" in error.message
        assert error.details == {"target": "/data/repo", "backup": "/data/repo.backup-1"}

    def test_unsupported_source_is_validation(self):
        error = UnsupportedSourceError("ftp")
        assert isinstance(error, ValidationError)
        assert error.field == "source.type"


@pytest.mark.unit
class TestSourceSpec:
    def test_kind_is_case_insensitive(self):
        assert SourceKind.parse(" Git ") is SourceKind.GIT

    @pytest.mark.parametrize("value", [None, "", 5])
    def test_missing_type(self, value):
        with pytest.raises(ValidationError) as exc_info:
            SourceKind.parse(value)
        assert exc_info.value.field == "source.type"
        assert not isinstance(exc_info.value, UnsupportedSourceError)

    def test_unknown_type(self):
        with pytest.raises(UnsupportedSourceError, match="ftp"):
            SourceSpec.from_payload({"type": "ftp", "details": {}})

    @pytest.mark.parametrize("details", [None, "url", [1]])
    def test_details_must_be_mapping(self, details):
        with pytest.raises(ValidationError) as exc_info:
            SourceSpec.from_payload({"type": "http", "details": details})
        assert exc_info.value.field == "source.details"


@pytest.mark.unit
class TestTargetSpec:
    def test_absolute_path(self):
        assert TargetSpec.from_payload({"path": "/data/vol"}).path == Path("/data/vol")

    @pytest.mark.parametrize("payload", [{"path": "relative/dir"}, {"path": ""}, {}, "/data"])
    def test_rejects_invalid(self, payload):
        with pytest.raises(ValidationError):
            TargetSpec.from_payload(payload)

    def test_direct_construction_validates(self):
        with pytest.raises(ValidationError) as exc_info:
            TargetSpec(Path("data"))
        assert exc_info.value.field == "target.path"


@pytest.mark.unit
class TestSyncJob:
    def _payload(self, **extra):
        return {"source": {"type": "http", "details": {"url": "https://x/f"}}, "target": {"path": "/data"}, **extra}

    def test_default_timeout(self):
        job = SyncJob.from_payload(self._payload(), 300.0)
        assert job.timeout == 300.0
        assert job.source.kind is SourceKind.HTTP
        assert len(job.job_id) == 12

    @pytest.mark.parametrize("value, expected", [("90s", 90.0), (15, 15.0), ("1m30s", 90.0)])
    def test_explicit_timeout(self, value, expected):
        assert SyncJob.from_payload(self._payload(timeout=value), 300.0).timeout == expected

    @pytest.mark.parametrize("value", ["soon", "0s", 0, -3])
    def test_invalid_timeout(self, value):
        with pytest.raises(ValidationError) as exc_info:
            SyncJob.from_payload(self._payload(timeout=value), 300.0)
        assert exc_info.value.field == "timeout"

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            SyncJob.from_payload(["not", "an", "object"], 300.0)

    def test_unique_job_ids(self):
        assert SyncJob.from_payload(self._payload(), 1).job_id != SyncJob.from_payload(self._payload(), 1).job_id


@pytest.mark.unit
class TestDetailsRecords:
    def test_secrets_hidden_from_repr(self):
        ssh = SSHDetails(host="h", user="u", path="/p", password="hunter2")
        git = GitDetails(url="https://x/r.git", user="u", password="s3cr3t", private_key=b"KEY")
        s3 = S3Details(
            endpoint_url="http://minio:9000",
            bucket="b",
            path="p",
            access_key="AKIAEXAMPLE",
            secret_key="wJalrXUtn",
            region="us-east-1",
        )
        assert "hunter2" not in repr(ssh)
        assert "s3cr3t" not in repr(git) and "KEY" not in repr(git)
        assert "AKIAEXAMPLE" not in repr(s3) and "wJalrXUtn" not in repr(s3)
        assert ssh.remote == "u@h"

    def test_outcome_duration(self):
        start = datetime(2026, 1, 1, tzinfo=UTC)
        outcome = JobOutcome(
            job_id="j",
            kind=SourceKind.GIT,
            target=Path("/data"),
            status=JobStatus.SUCCEEDED,
            started_at=start,
            finished_at=start + timedelta(seconds=2.5),
        )
        assert outcome.duration == 2.5
