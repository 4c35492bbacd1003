"""Backup API endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends

from sf_time_machine.client import BaseDataClient
from sf_time_machine.exceptions import BackupOptionsError
from sf_time_machine.jobs import JobHandle, JobManager
from sf_time_machine.time_machine import RunSummary, TimeMachine

from ..dependencies import get_data_client, get_job_manager, get_time_machine
from ..exceptions import InvalidBackupOptions

router = APIRouter(prefix="/backup", tags=["backup"])


@router.post("", response_model=JobHandle, status_code=202)
async def create_backup(
    options: Optional[Dict[str, Any]] = Body(default=None),
    client: BaseDataClient = Depends(get_data_client),
    job_manager: JobManager = Depends(get_job_manager),
    time_machine: TimeMachine = Depends(get_time_machine)
) -> JobHandle:
    """Start a backup asynchronously.

    Runs always land in the configured backup directory so the time
    machine can read them. Returns the job handle for tracking progress.
    """
    body = dict(options or {})
    body.pop("outputDirectory", None)
    body["output_directory"] = str(time_machine.backup_directory)

    try:
        return await job_manager.start_backup_job(client, body)
    except BackupOptionsError as e:
        raise InvalidBackupOptions(str(e))


@router.get("", response_model=List[RunSummary])
async def list_backups(
    time_machine: TimeMachine = Depends(get_time_machine)
) -> List[RunSummary]:
    """List backup runs, newest first, including unreadable ones."""
    return time_machine.summarize_runs()
