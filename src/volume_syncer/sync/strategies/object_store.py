"""
Object-store (S3) prefix sync.

boto3 blocks, so listing and downloads run in one worker thread. When the
task is cancelled (timeout or shutdown) the worker is told to stop through a
``threading.Event`` and given a short moment to remove its partial file; a worker stuck in a
blocking call is abandoned and checks the event again once it unblocks.
"""

from __future__ import annotations

import asyncio
import os
import posixpath
import threading
from collections.abc import Callable
from pathlib import Path

from volume_syncer.connections.s3 import DownloadCancelled, ObjectStoreConnection, default_path_style
from volume_syncer.exceptions import FilesystemError, SyncError
from volume_syncer.sync.process import ProcessExecutor
from volume_syncer.sync.strategies.base import SyncStrategy, ensure_directory
from volume_syncer.sync.types import S3Details, SourceKind
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.strategies.object_store")

# Seconds a cancelled worker gets to clean up before the task unwinds anyway
CANCEL_GRACE_S = 0.1

ConnectionFactory = Callable[..., ObjectStoreConnection]


def _style(path_style: bool) -> str:
    return "path-style" if path_style else "virtual-hosted"


def _consume(worker: asyncio.Future) -> None:
    if not worker.cancelled():
        worker.exception()


def _unless_stopped(connection: ObjectStoreConnection, stop: threading.Event) -> ObjectStoreConnection:
    if stop.is_set():
        connection.close()
        raise DownloadCancelled("")
    return connection


class ObjectStoreStrategy(SyncStrategy):
    """Download every object under a prefix, preserving the key layout below it."""

    kind = SourceKind.S3

    def __init__(
        self,
        details: S3Details,
        target: Path,
        timeout: float,
        executor: ProcessExecutor | None = None,
        connection_factory: ConnectionFactory = ObjectStoreConnection,
    ) -> None:
        super().__init__(target, timeout, executor)
        self.details = details
        self.connection_factory = connection_factory

    @property
    def prefix(self) -> str:
        return self.details.path.lstrip("/")

    async def _sync(self) -> None:
        ensure_directory(self.target)
        stop = threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(self._run, stop))
        try:
            count = await asyncio.shield(worker)
        except asyncio.CancelledError:
            stop.set()
            done, _ = await asyncio.wait([worker], timeout=CANCEL_GRACE_S)
            if worker in done:
                _consume(worker)
            else:
                logger.warning(
                    f"Abandoning s3 worker for {self.target} still blocked after {CANCEL_GRACE_S}s; "
                    "it stops at its next check"
                )
                worker.add_done_callback(_consume)
            raise
        logger.info(f"Downloaded {count} objects from s3://{self.details.bucket}/{self.prefix} into {self.target}")

    def _run(self, stop: threading.Event) -> int:
        if stop.is_set():
            raise DownloadCancelled(self.prefix)
        connection = self._connect(stop)
        try:
            count = 0
            for obj in connection.list_objects(self.prefix):
                if stop.is_set():
                    raise DownloadCancelled(obj.get("Key", ""))
                key = obj["Key"]
                if key.endswith("/"):
                    # Directory placeholder
                    continue
                local_path = self.local_path_for(key)
                logger.debug(f"Downloading s3://{self.details.bucket}/{key} to {local_path}")
                try:
                    connection.download_file(key, local_path, stop)
                except OSError as e:
                    raise FilesystemError(f"cannot write {local_path}: {e}") from e
                count += 1
            return count
        finally:
            connection.close()

    def _connect(self, stop: threading.Event) -> ObjectStoreConnection:
        """Probe with the preferred addressing style, then once more with the other one."""
        path_style = default_path_style(self.details)
        connection = self.connection_factory(self.details, path_style=path_style)
        try:
            connection.probe(self.prefix)
        except SyncError as e:
            connection.close()
            logger.warning(
                f"Probe of {self.details.endpoint_url} with {_style(path_style)} addressing failed ({e}), "
                f"retrying with {_style(not path_style)} addressing"
            )
        else:
            return _unless_stopped(connection, stop)

        if stop.is_set():
            raise DownloadCancelled(self.prefix)

        connection = self.connection_factory(self.details, path_style=not path_style)
        try:
            connection.probe(self.prefix)
        except SyncError:
            connection.close()
            raise
        return _unless_stopped(connection, stop)

    def local_path_for(self, key: str) -> Path:
        """
        Map an object key to a path under the target.

        The key minus the prefix, without leading slashes; the key's base name
        when that is empty.

        Raises:
            FilesystemError: If the key would land outside the target
        """
        prefix = self.prefix
        relative = key[len(prefix) :] if prefix and key.startswith(prefix) else key
        relative = relative.lstrip("/")
        if not relative:
            relative = posixpath.basename(key.rstrip("/"))

        root = Path(os.path.abspath(self.target))
        local_path = Path(os.path.normpath(root / relative))
        if local_path == root or root not in local_path.parents:
            raise FilesystemError(f"object key {key!r} resolves outside target {self.target}")
        return local_path
