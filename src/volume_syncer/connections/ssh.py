"""
SSH connection used to probe a remote host before a mirror transfer.

The probe authenticates, opens a session and runs a no-op command, so auth
and network failures are reported separately from transfer failures.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Any

import paramiko

from volume_syncer.exceptions import AuthError, NetworkError
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.connections.ssh")

PROBE_COMMAND = "true"


@dataclass(frozen=True)
class SSHConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key_path: str | None = None
    connect_timeout_s: float = 15.0


class SSHConnection:
    """Minimal paramiko client wrapper. Blocking; run it in a worker thread."""

    def __init__(self, config: SSHConfig):
        self.config = config
        self._client: paramiko.SSHClient | None = None

    def connect(self) -> paramiko.SSHClient:
        """Connect (lazy) and return a live ``paramiko.SSHClient``."""
        if self._client is not None:
            return self._client

        cfg = self.config
        client = paramiko.SSHClient()
        # Host keys are not pinned; rsync runs with StrictHostKeyChecking=no as well
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=cfg.host,
                port=cfg.port,
                username=cfg.username,
                password=cfg.password,
                key_filename=cfg.private_key_path,
                timeout=cfg.connect_timeout_s,
                banner_timeout=cfg.connect_timeout_s,
                auth_timeout=cfg.connect_timeout_s,
                allow_agent=cfg.password is None and cfg.private_key_path is None,
                look_for_keys=cfg.password is None and cfg.private_key_path is None,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthError(f"ssh authentication to {cfg.username}@{cfg.host}:{cfg.port} failed: {e}") from e
        except (paramiko.SSHException, socket.error, EOFError) as e:
            client.close()
            raise NetworkError(f"cannot connect to {cfg.host}:{cfg.port}: {e}") from e

        self._client = client
        return client

    def probe(self) -> None:
        """
        Connect, open a session and run a no-op command.

        Raises:
            AuthError: If the credentials are rejected
            NetworkError: If the host is unreachable or the session fails
        """
        cfg = self.config
        client = self.connect()
        try:
            _, stdout, _ = client.exec_command(PROBE_COMMAND, timeout=cfg.connect_timeout_s)
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error, EOFError) as e:
            raise NetworkError(f"ssh session to {cfg.host}:{cfg.port} failed: {e}") from e
        if status != 0:
            raise NetworkError(f"ssh probe command on {cfg.host} exited with status {status}")
        logger.debug(f"SSH probe to {cfg.username}@{cfg.host}:{cfg.port} succeeded")

    def close(self) -> None:
        """Close the client; safe to call from another thread to abort a probe."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None

    def __enter__(self) -> SSHConnection:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()
