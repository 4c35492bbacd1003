"""Health check endpoints."""

from typing import Dict

from fastapi import APIRouter, Depends, Request

from sf_time_machine.jobs import JobManager, JobStatus
from sf_time_machine.time_machine import TimeMachine

from ..dependencies import get_job_manager, get_time_machine
from ..models import HealthStatus

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthStatus)
async def health_check(
    request: Request,
    job_manager: JobManager = Depends(get_job_manager),
    time_machine: TimeMachine = Depends(get_time_machine)
) -> HealthStatus:
    """Report data client configuration, backup tree and running jobs."""
    client_ok = getattr(request.app.state, "data_client", None) is not None
    directory_ok = time_machine.backup_directory.is_dir()
    running = len(job_manager.list_jobs(status=JobStatus.RUNNING))

    return HealthStatus(
        status="healthy" if client_ok and directory_ok else "degraded",
        data_client=client_ok,
        backup_directory=directory_ok,
        running_jobs=running
    )


@router.get("/live")
async def liveness_probe() -> Dict[str, str]:
    """Kubernetes liveness probe."""
    return {"status": "alive"}
