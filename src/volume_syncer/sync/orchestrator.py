"""
Single-flight sync orchestration.

At most one sync runs per orchestrator. A request is validated (strategy
built, no I/O) before the busy flag is looked at; an accepted job runs as an
``asyncio`` task and the flag is released in that task's ``finally``.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime

from volume_syncer.exceptions import ErrorKind, SyncError, ValidationError
from volume_syncer.observability import add_correlation_id
from volume_syncer.sync.factory import StrategyFactory
from volume_syncer.sync.strategies import SyncStrategy
from volume_syncer.sync.types import Admission, AdmissionStatus, JobOutcome, JobStatus, SyncJob
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.orchestrator")


class BusyFlag:
    """Lock-guarded busy cell. ``try_acquire`` is the only way to set it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False

    def try_acquire(self) -> bool:
        with self._lock:
            if self._busy:
                return False
            self._busy = True
            return True

    def release(self) -> None:
        with self._lock:
            if not self._busy:
                raise RuntimeError("release() called while not busy")
            self._busy = False

    @property
    def is_set(self) -> bool:
        with self._lock:
            return self._busy


class SyncOrchestrator:
    """
    Accepts sync jobs one at a time and runs them in the background.

    Callers only learn whether a job was accepted, rejected as busy or
    rejected as invalid. How an accepted job ended is logged and kept in
    ``last_outcome``.
    """

    def __init__(self, factory: StrategyFactory) -> None:
        self.factory = factory
        self._flag = BusyFlag()
        self._task: asyncio.Task[None] | None = None
        self.last_outcome: JobOutcome | None = None

    def request_sync(self, job: SyncJob) -> Admission:
        """
        Admit or reject a job. Never blocks on I/O.

        Must be called from within a running event loop.

        Returns:
            Admission: ACCEPTED (task started), BUSY or INVALID (with the error)
        """
        try:
            strategy = self.factory.build(job.source, job.target.path, job.timeout)
        except ValidationError as e:
            logger.warning(f"Rejected sync request {job.job_id}: {e}")
            return Admission(AdmissionStatus.INVALID, job_id=job.job_id, error=e)

        if not self._flag.try_acquire():
            logger.info(f"Rejected sync request {job.job_id}: a sync is already running")
            return Admission(AdmissionStatus.BUSY, job_id=job.job_id)

        try:
            self._task = asyncio.get_running_loop().create_task(self._run(job, strategy), name=f"sync-{job.job_id}")
        except BaseException:
            self._flag.release()
            raise
        logger.info(f"Accepted sync job {job.job_id}: {job.source.kind.value} -> {job.target.path}")
        return Admission(AdmissionStatus.ACCEPTED, job_id=job.job_id)

    def is_busy(self) -> bool:
        return self._flag.is_set

    async def wait(self) -> JobOutcome | None:
        """Wait for the running job, if any, and return the latest outcome."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.last_outcome

    async def shutdown(self, grace: float) -> None:
        """
        Give a running job ``grace`` seconds to finish, then cancel it.

        Cleanup of credential files and staging directories runs as part of
        the cancelled task, so this returns only once it is done.
        """
        task = self._task
        if task is None or task.done():
            return
        logger.info(f"Waiting up to {grace:g}s for the running sync to finish")
        done, _ = await asyncio.wait([task], timeout=grace)
        if task in done:
            return
        logger.warning("Sync still running after grace period, cancelling it")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, job: SyncJob, strategy: SyncStrategy) -> None:
        started = datetime.now(UTC)
        status, error_kind, error = JobStatus.SUCCEEDED, None, None
        with add_correlation_id(job.job_id):
            try:
                await strategy.sync()
            except asyncio.CancelledError:
                status = JobStatus.CANCELLED
                raise
            except SyncError as e:
                status, error_kind, error = JobStatus.FAILED, e.kind, str(e)
            except Exception as e:
                logger.exception(f"Unexpected error in sync job {job.job_id}")
                status, error_kind, error = JobStatus.FAILED, ErrorKind.UNKNOWN, f"{type(e).__name__}: {e}"
            finally:
                self._flag.release()
                self.last_outcome = JobOutcome(
                    job_id=job.job_id,
                    kind=job.source.kind,
                    target=job.target.path,
                    status=status,
                    started_at=started,
                    finished_at=datetime.now(UTC),
                    error_kind=error_kind,
                    error=error,
                )
                self._log_outcome(self.last_outcome)

    @staticmethod
    def _log_outcome(outcome: JobOutcome) -> None:
        if outcome.status is JobStatus.SUCCEEDED:
            logger.info(f"Sync job {outcome.job_id} succeeded in {outcome.duration:.1f}s")
        elif outcome.status is JobStatus.CANCELLED:
            logger.warning(f"Sync job {outcome.job_id} cancelled after {outcome.duration:.1f}s")
        else:
            kind = outcome.error_kind.value if outcome.error_kind else ErrorKind.UNKNOWN.value
            logger.error(f"Sync job {outcome.job_id} failed ({kind}) after {outcome.duration:.1f}s: {outcome.error}")
