"""
Strategy factory.

Turns a ``SourceSpec`` (wire tag plus untyped details) into a typed details
record and a concrete strategy. Parsing and validation only: nothing here
touches the network or the filesystem.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from volume_syncer.connections.s3 import ObjectStoreConnection
from volume_syncer.connections.ssh import SSHConnection
from volume_syncer.exceptions import UnsupportedSourceError, ValidationError
from volume_syncer.sync.credentials import decode_private_key
from volume_syncer.sync.process import ProcessExecutor, SubprocessExecutor
from volume_syncer.sync.strategies import (
    HTTPDownloadStrategy,
    ObjectStoreStrategy,
    RemoteFilesystemStrategy,
    RepositoryStrategy,
    SyncStrategy,
)
from volume_syncer.sync.types import (
    GitDetails,
    HTTPDetails,
    S3Details,
    SourceKind,
    SourceSpec,
    SSHDetails,
    TargetSpec,
)

Details = SSHDetails | GitDetails | HTTPDetails | S3Details

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


# --- field helpers -----------------------------------------------------------


def _optional_str(details: Mapping[str, Any], key: str) -> str | None:
    value = details.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string", field=key)
    value = value.strip()
    return value or None


def _required_str(details: Mapping[str, Any], key: str, kind: SourceKind) -> str:
    value = _optional_str(details, key)
    if value is None:
        raise ValidationError(f"{kind.value} source requires '{key}'", field=key)
    return value


def _int(details: Mapping[str, Any], key: str, default: int, *, minimum: int, maximum: int | None = None) -> int:
    value = details.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"'{key}' must be an integer", field=key)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer", field=key)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValidationError(f"'{key}' must be {bounds}, got {value}", field=key)
    return value


def _bool(details: Mapping[str, Any], key: str) -> bool | None:
    value = details.get(key)
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE + _FALSE:
        return value.strip().lower() in _TRUE
    raise ValidationError(f"'{key}' must be a boolean", field=key)


def _private_key(details: Mapping[str, Any]) -> bytes | None:
    encoded = _optional_str(details, "privateKey")
    if encoded is None:
        return None
    try:
        return decode_private_key(encoded)
    except ValueError as e:
        raise ValidationError(str(e), field="privateKey") from None


# --- per-kind parsers --------------------------------------------------------


def parse_ssh_details(details: Mapping[str, Any]) -> SSHDetails:
    kind = SourceKind.SSH
    host = _required_str(details, "host", kind)
    user = _required_str(details, "user", kind)
    path = _required_str(details, "path", kind)
    port = _int(details, "port", 22, minimum=1, maximum=65535)
    password = _optional_str(details, "password")
    key_path = _optional_str(details, "key_path")
    private_key = _private_key(details)

    if password is not None and (private_key is not None or key_path is not None):
        raise ValidationError("'password' cannot be combined with 'privateKey' or 'key_path'", field="password")
    if private_key is not None and key_path is not None:
        raise ValidationError("'privateKey' and 'key_path' are mutually exclusive", field="privateKey")

    return SSHDetails(
        host=host, user=user, path=path, port=port, password=password, key_path=key_path, private_key=private_key
    )


def parse_git_details(details: Mapping[str, Any]) -> GitDetails:
    kind = SourceKind.GIT
    url = _required_str(details, "url", kind)
    branch = _optional_str(details, "branch")
    depth = _int(details, "depth", 1, minimum=0)
    user = _optional_str(details, "user")
    password = _optional_str(details, "password")
    private_key = _private_key(details)

    if (user is not None or password is not None) and private_key is not None:
        raise ValidationError("'user'/'password' cannot be combined with 'privateKey'", field="privateKey")
    if user is not None and password is None:
        raise ValidationError("'user' requires 'password'", field="password")
    if password is not None and user is None:
        raise ValidationError("'password' requires 'user'", field="user")

    return GitDetails(url=url, branch=branch, depth=depth, user=user, password=password, private_key=private_key)


def parse_http_details(details: Mapping[str, Any]) -> HTTPDetails:
    url = _required_str(details, "url", SourceKind.HTTP)
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError(f"'url' must be an absolute http or https URL, got {url!r}", field="url")
    return HTTPDetails(url=url)


def parse_s3_details(details: Mapping[str, Any]) -> S3Details:
    kind = SourceKind.S3
    return S3Details(
        endpoint_url=_required_str(details, "endpointUrl", kind),
        bucket=_required_str(details, "bucketName", kind),
        path=_required_str(details, "path", kind),
        access_key=_required_str(details, "accessKey", kind),
        secret_key=_required_str(details, "secretKey", kind),
        region=_required_str(details, "region", kind),
        force_path_style=_bool(details, "forcePathStyle"),
        disable_ssl=_bool(details, "disableSSL"),
    )


DETAIL_PARSERS: dict[SourceKind, Callable[[Mapping[str, Any]], Details]] = {
    SourceKind.SSH: parse_ssh_details,
    SourceKind.GIT: parse_git_details,
    SourceKind.HTTP: parse_http_details,
    SourceKind.S3: parse_s3_details,
}


class StrategyFactory:
    """
    Build strategies for sync jobs.

    Args:
        default_timeout: Seconds used when ``build`` gets no timeout
        executor: Process executor handed to strategies that shell out
        ssh_connection_factory: Builds the connection used for the ssh probe
        s3_connection_factory: Builds object-store connections
    """

    def __init__(
        self,
        default_timeout: float,
        executor: ProcessExecutor | None = None,
        *,
        ssh_connection_factory: Callable[..., SSHConnection] = SSHConnection,
        s3_connection_factory: Callable[..., ObjectStoreConnection] = ObjectStoreConnection,
    ) -> None:
        self.default_timeout = default_timeout
        self.executor = executor or SubprocessExecutor()
        self.ssh_connection_factory = ssh_connection_factory
        self.s3_connection_factory = s3_connection_factory

    def parse_details(self, source: SourceSpec) -> Details:
        try:
            parser = DETAIL_PARSERS[source.kind]
        except KeyError:
            raise UnsupportedSourceError(str(source.kind)) from None
        if not isinstance(source.details, Mapping):
            raise ValidationError("source details must be an object", field="source.details")
        return parser(source.details)

    def build(self, source: SourceSpec, target_path: str | Path, timeout: float | None = None) -> SyncStrategy:
        """
        Validate ``source`` and create its strategy.

        Args:
            source: Parsed source spec
            target_path: Absolute local directory to sync into
            timeout: Seconds the sync may take (default: factory default)

        Returns:
            A fresh strategy instance

        Raises:
            ValidationError: If the source or target is invalid
        """
        target = TargetSpec(Path(target_path)).path
        timeout = self.default_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValidationError("timeout must be positive", field="timeout")

        details = self.parse_details(source)
        if isinstance(details, SSHDetails):
            return RemoteFilesystemStrategy(
                details, target, timeout, self.executor, connection_factory=self.ssh_connection_factory
            )
        if isinstance(details, GitDetails):
            return RepositoryStrategy(details, target, timeout, self.executor)
        if isinstance(details, HTTPDetails):
            return HTTPDownloadStrategy(details, target, timeout, self.executor)
        return ObjectStoreStrategy(details, target, timeout, self.executor, connection_factory=self.s3_connection_factory)
