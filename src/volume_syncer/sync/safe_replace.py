"""
Stage-then-swap directory replacement.

The new tree is built in a staging directory beside the target, so committing
it is a single ``rename`` on the same filesystem. The previous tree is renamed
to a backup first and restored if the commit fails. At any point a reader of
the target path sees either the old tree or the complete new one.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
import time
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

from volume_syncer.exceptions import FilesystemError, ReplaceRollbackError
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.safe_replace")

Populate = Callable[[Path], Awaitable[None]]


def backup_path_for(target: Path) -> Path:
    """Unique sibling path the current target is moved to during the swap."""
    return target.with_name(f"{target.name}.backup-{int(time.time())}-{uuid.uuid4().hex[:8]}")


async def safe_replace(target: str | Path, populate: Populate) -> None:
    """
    Replace ``target`` with a tree built by ``populate``.

    Args:
        target: Directory to replace (created if it does not exist)
        populate: Coroutine function that fills the staging directory it is given

    Raises:
        Exception: Whatever ``populate`` raised; the target is untouched
        FilesystemError: If the swap failed; the target still holds its old content
        ReplaceRollbackError: If the swap failed and the old tree could not be put
            back; it survives at the backup path named in the error
    """
    target = Path(target)
    parent = target.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=parent, prefix=f".{target.name}.staging-"))
    except OSError as e:
        raise FilesystemError(f"cannot create staging directory beside {target}: {e}") from e

    logger.debug(f"Staging replacement for {target} in {staging}")
    try:
        try:
            await populate(staging)
        except BaseException as e:
            logger.warning(f"Populating staging for {target} failed, target left untouched: {e}")
            raise

        if not os.path.lexists(target):
            try:
                os.rename(staging, target)
            except OSError as e:
                raise FilesystemError(f"failed to move staged tree into {target}: {e}") from e
            return

        _copy_mode(target, staging)

        backup = backup_path_for(target)
        try:
            os.rename(target, backup)
        except OSError as e:
            raise FilesystemError(f"failed to move {target} aside, target left untouched: {e}") from e

        try:
            os.rename(staging, target)
        except OSError as e:
            logger.warning(f"Swapping staged tree into {target} failed, restoring backup: {e}")
            try:
                os.rename(backup, target)
            except OSError as rollback_error:
                logger.critical(
                    f"Could not restore {target} from {backup}: {rollback_error}. Manual intervention required."
                )
                raise ReplaceRollbackError(str(target), str(backup)) from rollback_error
            raise FilesystemError(f"failed to move staged tree into {target}, original restored: {e}") from e

        logger.info(f"Replaced {target} with staged tree")
        try:
            shutil.rmtree(backup)
        except OSError as e:
            logger.warning(f"Failed to remove backup {backup}, leaving it behind: {e}")
    finally:
        if os.path.lexists(staging):
            shutil.rmtree(staging, ignore_errors=True)


def _copy_mode(source: Path, destination: Path) -> None:
    # mkdtemp creates 0700; keep the permissions consumers of the target expect
    try:
        mode = stat.S_IMODE(os.stat(source).st_mode)
        os.chmod(destination, mode)
    except OSError as e:
        logger.warning(f"Could not copy permissions of {source} to staging: {e}")
