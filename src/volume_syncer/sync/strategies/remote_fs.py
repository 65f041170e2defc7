"""
Remote filesystem sync over SSH.

Probes the host with paramiko, then mirrors the remote directory with
``rsync --delete`` so files absent remotely are removed locally.
"""

from __future__ import annotations

import asyncio
import posixpath
import shlex
from collections.abc import Callable
from contextlib import ExitStack
from pathlib import Path

from volume_syncer.connections.ssh import SSHConfig, SSHConnection
from volume_syncer.exceptions import CommandError, FilesystemError, NetworkError
from volume_syncer.sync.credentials import CredentialMaterial
from volume_syncer.sync.process import ProcessExecutor
from volume_syncer.sync.strategies.base import SyncStrategy, ensure_directory
from volume_syncer.sync.types import SourceKind, SSHDetails
from volume_syncer.utils.logging import get_logger
from volume_syncer.utils.masking import redact

logger = get_logger("volume_syncer.sync.strategies.remote_fs")

SSH_OPTIONS = (
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    "UserKnownHostsFile=/dev/null",
    "-o",
    "LogLevel=ERROR",
)

ConnectionFactory = Callable[[SSHConfig], SSHConnection]


def remote_source(path: str) -> str:
    """Absolute remote path ending in ``/`` so rsync copies the directory's contents."""
    normalized = posixpath.normpath("/" + path.strip().lstrip("/"))
    return normalized if normalized.endswith("/") else normalized + "/"


class RemoteFilesystemStrategy(SyncStrategy):
    """Mirror ``user@host:path/`` into the target with rsync."""

    kind = SourceKind.SSH

    def __init__(
        self,
        details: SSHDetails,
        target: Path,
        timeout: float,
        executor: ProcessExecutor | None = None,
        connection_factory: ConnectionFactory = SSHConnection,
    ) -> None:
        super().__init__(target, timeout, executor)
        self.details = details
        self.connection_factory = connection_factory

    async def _sync(self) -> None:
        ensure_directory(self.target)
        with ExitStack() as stack:
            key_file = await self._resolve_key(stack)
            await self._probe(key_file)
            await self._transfer(key_file)

    async def _resolve_key(self, stack: ExitStack) -> Path | None:
        d = self.details
        if d.private_key is not None:
            return stack.enter_context(CredentialMaterial(d.private_key))
        if d.key_path:
            try:
                key = await asyncio.to_thread(Path(d.key_path).read_bytes)
            except OSError as e:
                raise FilesystemError(f"cannot read key file {d.key_path}: {e}") from e
            # Copied so the file handed to ssh is 0600 whatever the source permissions
            return stack.enter_context(CredentialMaterial(key))
        return None

    async def _probe(self, key_file: Path | None) -> None:
        d = self.details
        connection = self.connection_factory(
            SSHConfig(
                host=d.host,
                port=d.port,
                username=d.user,
                password=d.password,
                private_key_path=str(key_file) if key_file else None,
                connect_timeout_s=min(self.timeout, 30.0),
            )
        )
        logger.info(f"Probing ssh connectivity to {d.remote}:{d.port}")
        try:
            await asyncio.to_thread(connection.probe)
        finally:
            # Closing from the loop thread also aborts a probe still running after cancellation
            connection.close()

    def ssh_command(self, key_file: Path | None) -> str:
        parts = ["ssh", "-p", str(self.details.port), *SSH_OPTIONS]
        if key_file is not None:
            parts += ["-i", str(key_file), "-o", "IdentitiesOnly=yes"]
        if self.details.password is not None:
            parts += ["-o", "PreferredAuthentications=password,keyboard-interactive", "-o", "PubkeyAuthentication=no"]
        else:
            parts += ["-o", "BatchMode=yes"]
        return shlex.join(parts)

    def rsync_args(self, key_file: Path | None) -> list[str]:
        d = self.details
        args = [
            "rsync",
            "-az",
            "--delete",
            "-e",
            self.ssh_command(key_file),
            f"{d.remote}:{remote_source(d.path)}",
            str(self.target).rstrip("/") + "/",
        ]
        if d.password is not None:
            # Password reaches sshpass through the child environment only
            args = ["sshpass", "-e", *args]
        return args

    async def _transfer(self, key_file: Path | None) -> None:
        d = self.details
        env = {"SSHPASS": d.password} if d.password is not None else None
        logger.info(f"Mirroring {d.remote}:{remote_source(d.path)} into {self.target}")
        try:
            await self.executor.run(self.rsync_args(key_file), env=env, timeout=self.timeout)
        except CommandError as e:
            stderr = redact(e.stderr.strip(), [d.password])
            raise NetworkError(f"rsync from {d.remote} failed with status {e.returncode}: {stderr}") from e
