"""
External process execution.

Strategies that shell out (``git``, ``rsync``) receive a ``ProcessExecutor``
so tests can substitute a fake. ``SubprocessExecutor`` is the real one.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from volume_syncer.exceptions import CommandError, SyncTimeoutError, UnknownSyncError
from volume_syncer.utils.durations import format_duration
from volume_syncer.utils.logging import get_logger
from volume_syncer.utils.masking import mask_args, mask_credentials

logger = get_logger("volume_syncer.sync.process")


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessExecutor(ABC):
    """Runs one external command and reports its result."""

    @abstractmethod
    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> ProcessResult:
        """
        Run a command to completion.

        Args:
            args: Program and arguments (no shell)
            cwd: Working directory
            env: Extra environment variables for this child only
            timeout: Seconds before the child is killed
            check: Raise ``CommandError`` on a non-zero exit status

        Returns:
            ProcessResult with credential-masked output

        Raises:
            CommandError: If ``check`` and the command failed
            SyncTimeoutError: If ``timeout`` expired
        """


class SubprocessExecutor(ProcessExecutor):
    """``asyncio`` subprocess executor; kills the child on timeout or cancellation."""

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> ProcessResult:
        masked = mask_args(args)
        logger.debug(f"Running: {' '.join(masked)}")

        child_env = {**os.environ, **env} if env else None
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                env=child_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise UnknownSyncError(f"executable not found: {args[0]}") from e
        except OSError as e:
            raise UnknownSyncError(f"failed to start {args[0]}: {e}") from e

        try:
            async with asyncio.timeout(timeout):
                stdout, stderr = await proc.communicate()
        except TimeoutError:
            await _kill(proc)
            raise SyncTimeoutError(
                f"command `{' '.join(masked)}` timed out after {format_duration(timeout or 0)}",
                timeout=timeout,
            ) from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        result = ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=mask_credentials(stdout.decode(errors="replace")),
            stderr=mask_credentials(stderr.decode(errors="replace")),
        )
        if check and not result.ok:
            raise CommandError(masked, result.returncode, result.stderr)
        return result


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    # Reap the child even if the surrounding task is being cancelled
    await asyncio.shield(proc.wait())
