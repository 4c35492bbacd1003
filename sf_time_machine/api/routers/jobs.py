"""Job tracking router."""

from typing import List, Optional

from fastapi import APIRouter, Depends

from sf_time_machine.exceptions import JobNotFoundError
from sf_time_machine.jobs import BackupJob, JobManager, JobStatus

from ..dependencies import get_job_manager
from ..exceptions import JobNotFound

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=List[BackupJob])
async def list_jobs(
    status: Optional[JobStatus] = None,
    job_manager: JobManager = Depends(get_job_manager)
):
    """List all jobs with optional status filter."""
    return job_manager.list_jobs(status=status)


@router.get("/{job_id}", response_model=BackupJob)
async def get_job(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager)
):
    """Get specific job details."""
    try:
        return job_manager.get_job_status(job_id)
    except JobNotFoundError:
        raise JobNotFound(job_id)
