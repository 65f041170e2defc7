"""
Ephemeral credential material.

Private keys arrive base64-encoded in the request. They are decoded during
validation and written to a ``0600`` temporary file only for the duration of
the single operation that needs them.
"""

from __future__ import annotations

import base64
import binascii
import os
import tempfile
from pathlib import Path
from types import TracebackType

from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.credentials")


def decode_private_key(encoded: str) -> bytes:
    """
    Decode a base64-encoded private key.

    Raises:
        ValueError: If the value is not valid base64 or decodes to nothing
    """
    try:
        key = base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("privateKey is not valid base64") from e
    if not key.strip():
        raise ValueError("privateKey decodes to an empty key")
    return key


class CredentialMaterial:
    """
    A private key materialized as a temporary file.

    Usage::

        with CredentialMaterial(details.private_key) as key_file:
            await executor.run(["ssh", "-i", str(key_file), ...])

    The file is removed when the block exits, whatever the outcome.
    """

    def __init__(self, key: bytes, *, directory: str | Path | None = None) -> None:
        self._key = key
        self._directory = directory
        self.path: Path | None = None

    def __repr__(self) -> str:
        return f"CredentialMaterial(path={self.path!s})"

    def __enter__(self) -> Path:
        fd, name = tempfile.mkstemp(prefix="volume-syncer-key-", dir=self._directory)
        self.path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), 0o600)
                f.write(self._key)
                # OpenSSH rejects keys without a trailing newline
                if not self._key.endswith(b"\n"):
                    f.write(b"\n")
        except BaseException:
            self.destroy()
            raise
        logger.debug(f"Materialized credential file {self.path}")
        return self.path

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.destroy()

    def destroy(self) -> None:
        if self.path is None:
            return
        try:
            self.path.unlink(missing_ok=True)
            logger.debug(f"Removed credential file {self.path}")
        except OSError as e:
            logger.warning(f"Failed to remove credential file {self.path}: {e}")
        finally:
            self.path = None
