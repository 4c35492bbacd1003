"""Job tracking for asynchronous backup runs.

Jobs live in process memory only. A restart loses job status, while the
run directory a job was populating survives on disk (without a manifest
if the run was interrupted).
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from ._utils import logger, utc_now
from .backup.manager import BackupManager
from .backup.models import BackupOptions, BackupType, RunResult
from .client import BaseDataClient
from .config import TimeMachineConfig
from .exceptions import JobNotFoundError


class JobStatus(str, Enum):
    """Job status enum."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackupJob(BaseModel):
    """Snapshot of one backup job."""
    job_id: str
    status: JobStatus
    backup_type: BackupType
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    backup_directory: str
    progress: int = 0
    message: str = ""
    result: Optional[RunResult] = None
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobHandle(BaseModel):
    """Immediate response to starting a backup."""
    job_id: str
    status: JobStatus
    backup_directory: str


class JobManager:
    """Manages backup job lifecycle.

    Only the task driving a job mutates it; ``get_job_status`` and
    ``list_jobs`` hand out copies.
    """

    def __init__(
        self,
        config: Optional[TimeMachineConfig] = None,
        manager_factory: Callable[..., BackupManager] = BackupManager
    ):
        self.config = config or TimeMachineConfig()
        self._manager_factory = manager_factory
        self._jobs: Dict[str, BackupJob] = {}
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    async def start_backup_job(
        self,
        client: BaseDataClient,
        options: Union[BackupOptions, Dict[str, Any], None] = None
    ) -> JobHandle:
        """Validate options, register a queued job and schedule the run.

        Returns without awaiting any backup work.

        Raises:
            BackupOptionsError: options are invalid, no job is created
        """
        backup_options = BackupOptions.from_input(options)
        self.cleanup_finished_jobs()

        manager = self._manager_factory(client, backup_options, self.config)
        job_id = str(uuid.uuid4())

        job = BackupJob(
            job_id=job_id,
            status=JobStatus.QUEUED,
            backup_type=backup_options.backup_type,
            created_at=utc_now(),
            backup_directory=str(manager.backup_dir),
            message="Backup queued"
        )
        self._jobs[job_id] = job
        self._tasks[job_id] = asyncio.create_task(
            self._run_job(job, manager), name=f"backup-job-{job_id}"
        )

        logger.info(f"Created {job.backup_type.value} backup job {job_id}: {job.backup_directory}")
        return JobHandle(job_id=job_id, status=job.status, backup_directory=job.backup_directory)

    async def _run_job(self, job: BackupJob, manager: BackupManager) -> None:
        """Background task driving one job through its states."""
        job.status = JobStatus.RUNNING
        job.started_at = utc_now()
        job.message = "Backup running"

        def on_progress(percent: int, message: str) -> None:
            job.progress = percent
            job.message = message

        try:
            result = await manager.run(progress_callback=on_progress)
        except asyncio.CancelledError:
            self._fail(job, "Backup cancelled")
            raise
        except Exception as e:
            self._fail(job, str(e) or type(e).__name__)
            logger.error(f"Backup job {job.job_id} failed: {e}")
        else:
            job.result = result
            job.progress = 100
            job.message = f"Backup completed with {result.stats.errors} errors"
            job.status = JobStatus.COMPLETED
            job.finished_at = utc_now()
            logger.info(f"Backup job {job.job_id} completed: {result.backup_directory}")
        finally:
            self._tasks.pop(job.job_id, None)

    @staticmethod
    def _fail(job: BackupJob, error: str) -> None:
        job.error = error
        job.message = "Backup failed"
        job.status = JobStatus.FAILED
        job.finished_at = utc_now()

    def get_job_status(self, job_id: str) -> BackupJob:
        """Return a copy of the job's current state.

        Raises:
            JobNotFoundError: unknown or expired job id
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.model_copy(deep=True)

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[BackupJob]:
        """List all known jobs, newest first, optionally filtered by status."""
        jobs = [
            job.model_copy(deep=True) for job in self._jobs.values()
            if status is None or job.status == status
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def is_job_running(self, job_id: str) -> bool:
        return not self.get_job_status(job_id).is_finished

    async def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> BackupJob:
        """Wait until the job finishes and return its final state."""
        if job_id not in self._jobs:
            raise JobNotFoundError(job_id)

        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return self.get_job_status(job_id)

    def cleanup_finished_jobs(self, max_age_hours: Optional[float] = None) -> int:
        """Forget finished jobs older than the retention window.

        Args:
            max_age_hours: Retention override, defaults to ``JobConfig.retention_hours``

        Returns:
            Number of jobs removed
        """
        if max_age_hours is None:
            max_age_hours = self.config.jobs.retention_hours
        cutoff = utc_now() - timedelta(hours=max_age_hours)

        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.is_finished and job.finished_at is not None and job.finished_at <= cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]

        if expired:
            logger.debug(f"Removed {len(expired)} expired backup jobs")
        return len(expired)
