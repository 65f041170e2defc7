"""
S3 connection for object-store syncs.

Provides a lazily created boto3 client with addressing style and TLS chosen
from the endpoint, plus listing and streaming download helpers. All methods
block; the strategy runs them in a worker thread.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from volume_syncer.exceptions import AuthError, NetworkError, SyncError
from volume_syncer.sync.types import S3Details
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.connections.s3")

AWS_DOMAIN = "amazonaws.com"

CHUNK_SIZE = 1024 * 1024

# Error codes meaning the credentials (not the network) are at fault
AUTH_ERROR_CODES = frozenset(
    (
        "AccessDenied",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "InvalidToken",
        "ExpiredToken",
        "AuthorizationHeaderMalformed",
        "InvalidClientTokenId",
        "403",
    )
)


class DownloadCancelled(Exception):
    """Raised inside a worker thread when the owning task asked it to stop."""


def is_aws_endpoint(endpoint_url: str) -> bool:
    host = urlsplit(endpoint_url if "://" in endpoint_url else f"https://{endpoint_url}").hostname or ""
    return host == AWS_DOMAIN or host.endswith("." + AWS_DOMAIN)


def default_path_style(details: S3Details) -> bool:
    """Explicit ``forcePathStyle`` wins; otherwise path style for anything that is not AWS."""
    if details.force_path_style is not None:
        return details.force_path_style
    return not is_aws_endpoint(details.endpoint_url)


def resolve_endpoint(details: S3Details) -> tuple[str, bool]:
    """
    Work out the endpoint URL and whether TLS is used.

    Returns:
        (endpoint URL with scheme, use_ssl)
    """
    raw = details.endpoint_url.strip()
    parts = urlsplit(raw if "://" in raw else f"https://{raw}")
    use_ssl = parts.scheme != "http"
    if details.disable_ssl is not None:
        use_ssl = not details.disable_ssl
    scheme = "https" if use_ssl else "http"
    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment)), use_ssl


def classify_error(error: Exception, context: str) -> SyncError:
    """Map a boto3/botocore failure onto the sync error taxonomy."""
    if isinstance(error, NoCredentialsError):
        return AuthError(f"{context}: {error}")
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in AUTH_ERROR_CODES or status == 403:
            return AuthError(f"{context}: {code or status}: {error}")
        return NetworkError(f"{context}: {code or status}: {error}")
    return NetworkError(f"{context}: {error}")


class ObjectStoreConnection:
    """
    S3 connection wrapper for one bucket.

    Config comes from validated ``S3Details``; ``path_style`` selects the
    addressing style so a caller can retry with the other one.
    """

    def __init__(self, details: S3Details, *, path_style: bool, connect_timeout_s: float = 15.0):
        self.details = details
        self.path_style = path_style
        self.connect_timeout_s = connect_timeout_s
        self._client = None

    @property
    def bucket(self) -> str:
        return self.details.bucket

    def _get_client_kwargs(self) -> dict[str, Any]:
        """Build kwargs for boto3 client initialization."""
        endpoint_url, use_ssl = resolve_endpoint(self.details)
        return {
            "endpoint_url": endpoint_url,
            "region_name": self.details.region,
            "aws_access_key_id": self.details.access_key,
            "aws_secret_access_key": self.details.secret_key,
            "use_ssl": use_ssl,
            # Self-hosted stores commonly use private CAs
            "verify": is_aws_endpoint(self.details.endpoint_url) if use_ssl else None,
            "config": BotoConfig(
                s3={"addressing_style": "path" if self.path_style else "virtual"},
                connect_timeout=self.connect_timeout_s,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        }

    @property
    def client(self):
        """Get boto3 S3 client (lazy initialization)."""
        if self._client is None:
            self._client = boto3.client("s3", **self._get_client_kwargs())
        return self._client

    def probe(self, prefix: str = "") -> None:
        """
        Bounded listing to check the endpoint, bucket and credentials.

        Raises:
            AuthError: If the credentials are rejected
            NetworkError: For any other failure
        """
        try:
            self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        except (ClientError, BotoCoreError) as e:
            raise classify_error(e, f"probing bucket {self.bucket}") from e

    def list_objects(self, prefix: str = "") -> Iterator[dict[str, Any]]:
        """
        List all objects under ``prefix`` across pages.

        Yields:
            Dict with object metadata (Key, Size, LastModified, ETag, etc.)
        """
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                yield from page.get("Contents", [])
        except (ClientError, BotoCoreError) as e:
            raise classify_error(e, f"listing s3://{self.bucket}/{prefix}") from e

    def download_file(self, key: str, local_path: str | Path, stop: threading.Event | None = None) -> Path:
        """
        Stream an object to a local file.

        Writes to ``<local_path>.part`` and renames into place, so a partial
        download never sits at ``local_path``. The partial file is removed on
        any failure, including ``stop`` being set.

        Args:
            key: Object key
            local_path: Destination file
            stop: Checked between chunks; when set the download is abandoned

        Returns:
            Path to the downloaded file
        """
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = local_path.with_name(local_path.name + ".part")
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"]
            try:
                with open(tmp_path, "wb") as f:
                    for chunk in body.iter_chunks(CHUNK_SIZE):
                        if stop is not None and stop.is_set():
                            raise DownloadCancelled(key)
                        f.write(chunk)
            finally:
                body.close()
            os.replace(tmp_path, local_path)
        except (ClientError, BotoCoreError) as e:
            tmp_path.unlink(missing_ok=True)
            raise classify_error(e, f"downloading s3://{self.bucket}/{key}") from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return local_path

    def close(self) -> None:
        """Close S3 client connections."""
        if self._client is not None:
            self._client.close()
        self._client = None

    def __enter__(self) -> ObjectStoreConnection:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
