"""
Tests for the ssh/rsync remote filesystem strategy.

The paramiko probe is replaced with a fake connection and rsync with the
recording executor.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

import paramiko
import pytest
from conftest import FAKE_KEY, FakeExecutor

from volume_syncer.connections import ssh
from volume_syncer.connections.ssh import SSHConfig, SSHConnection
from volume_syncer.exceptions import AuthError, FilesystemError, NetworkError
from volume_syncer.sync.process import ProcessResult
from volume_syncer.sync.strategies.remote_fs import RemoteFilesystemStrategy, remote_source
from volume_syncer.sync.types import SSHDetails


class FakeSSHConnection:
    instances: list[FakeSSHConnection] = []

    def __init__(self, config: SSHConfig, error: Exception | None = None):
        self.config = config
        self.error = error
        self.probed = False
        self.closed = False
        self.key_existed = config.private_key_path is not None and Path(config.private_key_path).exists()
        FakeSSHConnection.instances.append(self)

    def probe(self) -> None:
        self.probed = True
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_connections():
    FakeSSHConnection.instances = []
    yield


def _strategy(target: Path, executor: FakeExecutor, error: Exception | None = None, **details):
    fields = {"host": "files.example.com", "user": "sync", "path": "/srv/data", **details}
    return RemoteFilesystemStrategy(
        SSHDetails(**fields),
        target,
        60.0,
        executor,
        connection_factory=lambda config: FakeSSHConnection(config, error),
    )


def _ssh_command(args: list[str]) -> list[str]:
    return shlex.split(args[args.index("-e") + 1])


@pytest.mark.unit
class TestRemoteSource:
    @pytest.mark.parametrize(
        "path, expected",
        [("/srv/data", "/srv/data/"), ("srv/data/", "/srv/data/"), ("/", "/"), ("/a/../b", "/b/")],
    )
    def test_normalizes(self, path, expected):
        assert remote_source(path) == expected


@pytest.mark.unit
class TestRemoteFilesystemStrategy:
    @pytest.mark.asyncio
    async def test_probe_then_rsync_with_delete(self, tmp_path):
        target = tmp_path / "vol"
        executor = FakeExecutor()

        await _strategy(target, executor, port=2222).sync()

        (connection,) = FakeSSHConnection.instances
        assert connection.probed and connection.closed
        assert connection.config.port == 2222
        assert connection.config.username == "sync"

        (args,) = executor.commands
        assert args[:3] == ["rsync", "-az", "--delete"]
        assert args[-2:] == ["sync@files.example.com:/srv/data/", f"{target}/"]
        ssh = _ssh_command(args)
        assert ssh[:3] == ["ssh", "-p", "2222"]
        assert "BatchMode=yes" in ssh
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_password_goes_through_environment(self, tmp_path):
        executor = FakeExecutor()

        await _strategy(tmp_path / "vol", executor, password="hunter2").sync()

        (call,) = executor.calls
        assert call["args"][:2] == ["sshpass", "-e"]
        assert call["env"] == {"SSHPASS": "hunter2"}
        assert all("hunter2" not in arg for arg in call["args"])
        assert "PubkeyAuthentication=no" in _ssh_command(call["args"])
        assert FakeSSHConnection.instances[0].config.password == "hunter2"

    @pytest.mark.asyncio
    async def test_private_key_file_exists_only_during_sync(self, tmp_path):
        seen: list[Path] = []

        def handler(args, call):
            ssh = _ssh_command(args)
            key_file = Path(ssh[ssh.index("-i") + 1])
            assert key_file.read_bytes() == FAKE_KEY
            assert key_file.stat().st_mode & 0o777 == 0o600
            seen.append(key_file)

        await _strategy(tmp_path / "vol", FakeExecutor(handler), private_key=FAKE_KEY).sync()

        assert FakeSSHConnection.instances[0].key_existed
        assert seen and not seen[0].exists()

    @pytest.mark.asyncio
    async def test_private_key_removed_after_rsync_failure(self, tmp_path):
        seen: list[Path] = []

        def handler(args, call):
            ssh = _ssh_command(args)
            seen.append(Path(ssh[ssh.index("-i") + 1]))
            return ProcessResult(12, "", "rsync error: error in rsync protocol data stream (code 12)\n")

        with pytest.raises(NetworkError, match="status 12"):
            await _strategy(tmp_path / "vol", FakeExecutor(handler), private_key=FAKE_KEY).sync()

        assert seen and not seen[0].exists()

    @pytest.mark.asyncio
    async def test_key_path_is_copied(self, tmp_path):
        key = tmp_path / "id_ed25519"
        key.write_bytes(FAKE_KEY)
        key.chmod(0o644)
        executor = FakeExecutor()

        await _strategy(tmp_path / "vol", executor, key_path=str(key)).sync()

        ssh = _ssh_command(executor.commands[0])
        used = Path(ssh[ssh.index("-i") + 1])
        assert used != key
        assert not used.exists()
        assert key.exists()

    @pytest.mark.asyncio
    async def test_unreadable_key_path(self, tmp_path):
        executor = FakeExecutor()
        with pytest.raises(FilesystemError, match="cannot read key file"):
            await _strategy(tmp_path / "vol", executor, key_path=str(tmp_path / "missing")).sync()
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_auth_failure_skips_transfer(self, tmp_path):
        executor = FakeExecutor()

        with pytest.raises(AuthError):
            await _strategy(tmp_path / "vol", executor, error=AuthError("ssh authentication failed")).sync()

        assert executor.calls == []
        assert FakeSSHConnection.instances[0].closed

    @pytest.mark.asyncio
    async def test_target_is_a_file(self, tmp_path):
        target = tmp_path / "vol"
        target.write_text("x")
        with pytest.raises(FilesystemError):
            await _strategy(target, FakeExecutor()).sync()
        assert FakeSSHConnection.instances == []

    @pytest.mark.asyncio
    async def test_password_never_logged(self, tmp_path, caplog):
        caplog.set_level(logging.DEBUG, logger="volume_syncer")

        def handler(args, call):
            return ProcessResult(5, "", "Permission denied, please try again. (password hunter2)\n")

        with pytest.raises(NetworkError) as exc_info:
            await _strategy(tmp_path / "vol", FakeExecutor(handler), password="hunter2").sync()

        assert "hunter2" not in str(exc_info.value)
        assert "hunter2" not in caplog.text


class _Channel:
    def __init__(self, status: int):
        self.status = status

    def recv_exit_status(self) -> int:
        return self.status


class _Stdout:
    def __init__(self, status: int):
        self.channel = _Channel(status)


class FakeParamikoClient:
    """Stands in for ``paramiko.SSHClient``; behaviour is set on the class per test."""

    connect_error: Exception | None = None
    exit_status = 0
    last: FakeParamikoClient | None = None

    def __init__(self):
        self.connect_kwargs = None
        self.commands: list[str] = []
        self.closed = False
        FakeParamikoClient.last = self

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if FakeParamikoClient.connect_error is not None:
            raise FakeParamikoClient.connect_error

    def exec_command(self, command, timeout=None):
        self.commands.append(command)
        return None, _Stdout(FakeParamikoClient.exit_status), None

    def close(self):
        self.closed = True


@pytest.fixture
def fake_paramiko(monkeypatch):
    FakeParamikoClient.connect_error = None
    FakeParamikoClient.exit_status = 0
    FakeParamikoClient.last = None
    monkeypatch.setattr(ssh.paramiko, "SSHClient", FakeParamikoClient)
    return FakeParamikoClient


@pytest.mark.unit
class TestSSHConnection:
    def test_probe_runs_noop_command(self, fake_paramiko):
        with SSHConnection(SSHConfig(host="h", port=2222, username="u", password="pw")) as connection:
            connection.probe()
            client = fake_paramiko.last

        assert client.commands == ["true"]
        assert client.connect_kwargs["port"] == 2222
        assert client.connect_kwargs["allow_agent"] is False
        assert client.closed

    def test_agent_allowed_without_explicit_credentials(self, fake_paramiko):
        SSHConnection(SSHConfig(host="h", username="u")).probe()

        assert fake_paramiko.last.connect_kwargs["allow_agent"] is True
        assert fake_paramiko.last.connect_kwargs["look_for_keys"] is True

    def test_authentication_failure(self, fake_paramiko):
        fake_paramiko.connect_error = paramiko.AuthenticationException("Authentication failed.")
        with pytest.raises(AuthError):
            SSHConnection(SSHConfig(host="h", username="u", password="pw")).probe()
        assert fake_paramiko.last.closed

    def test_unreachable_host(self, fake_paramiko):
        fake_paramiko.connect_error = OSError("Connection refused")
        with pytest.raises(NetworkError, match="cannot connect"):
            SSHConnection(SSHConfig(host="h", username="u")).probe()

    def test_probe_command_failure(self, fake_paramiko):
        fake_paramiko.exit_status = 1
        with pytest.raises(NetworkError, match="exited with status 1"):
            SSHConnection(SSHConfig(host="h", username="u")).probe()

    def test_password_not_in_config_repr(self):
        assert "hunter2" not in repr(SSHConfig(host="h", password="hunter2"))
