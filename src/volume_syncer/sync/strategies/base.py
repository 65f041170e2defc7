"""
Base strategy interface.

A strategy mirrors one source kind into a local target directory. Instances
are built fresh per job by the factory and hold no state beyond one ``sync()``.
"""

from __future__ import annotations

import asyncio
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from volume_syncer.exceptions import FilesystemError, SyncError, SyncTimeoutError, UnknownSyncError
from volume_syncer.sync.process import ProcessExecutor, SubprocessExecutor
from volume_syncer.sync.types import SourceKind
from volume_syncer.utils.durations import format_duration
from volume_syncer.utils.logging import get_logger
from volume_syncer.utils.masking import mask_credentials

logger = get_logger("volume_syncer.sync.strategies")


class SyncStrategy(ABC):
    """Base class for source strategies."""

    kind: ClassVar[SourceKind]

    def __init__(self, target: Path, timeout: float, executor: ProcessExecutor | None = None) -> None:
        self.target = Path(target)
        self.timeout = timeout
        self.executor = executor or SubprocessExecutor()

    async def sync(self) -> None:
        """
        Run the sync under the job deadline.

        Raises:
            SyncError: Classified failure; ``SyncTimeoutError`` when the deadline expires
        """
        logger.info(f"Starting {self.kind.value} sync into {self.target} (timeout {format_duration(self.timeout)})")
        started = time.monotonic()
        try:
            async with asyncio.timeout(self.timeout):
                await self._sync()
        except SyncError:
            raise
        except TimeoutError as e:
            raise SyncTimeoutError(
                f"{self.kind.value} sync did not finish within {format_duration(self.timeout)}",
                timeout=self.timeout,
            ) from e
        except OSError as e:
            raise FilesystemError(mask_credentials(str(e))) from e
        except Exception as e:
            raise UnknownSyncError(mask_credentials(f"{type(e).__name__}: {e}")) from e
        logger.info(f"{self.kind.value} sync into {self.target} finished in {format_duration(time.monotonic() - started)}")

    @abstractmethod
    async def _sync(self) -> None:
        """Do the work. Bounded by ``self.timeout`` through ``sync()``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={str(self.target)!r}, timeout={self.timeout})"


def ensure_directory(path: Path) -> None:
    """Create ``path`` (and parents) if absent; fail if it exists and is not a directory."""
    if path.exists() and not path.is_dir():
        raise FilesystemError(f"target {path} exists and is not a directory")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"cannot create target directory {path}: {e}") from e


def is_empty_directory(path: Path) -> bool:
    with os.scandir(path) as entries:
        return next(entries, None) is None
