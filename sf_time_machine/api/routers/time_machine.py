"""Point-in-time query endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path

from sf_time_machine.exceptions import NoBackupDataError
from sf_time_machine.time_machine import (
    ComparisonResult,
    PointInTimeResult,
    RecordHistory,
    RunSummary,
    TimeMachine,
)

from ..dependencies import get_time_machine
from ..exceptions import NoBackupData
from ..models import OBJECT_TYPE_PATTERN, CompareRequest, QueryRequest

router = APIRouter(prefix="/time-machine", tags=["time-machine"])


@router.get("/runs", response_model=List[RunSummary])
async def list_runs(time_machine: TimeMachine = Depends(get_time_machine)):
    """Runs visible to point-in-time queries, newest first."""
    return [summary for summary in time_machine.summarize_runs() if summary.read_error is None]


@router.post("/query", response_model=PointInTimeResult)
async def query_point_in_time(
    request: QueryRequest,
    time_machine: TimeMachine = Depends(get_time_machine)
):
    """Records of one object type as they existed at the target date."""
    try:
        return time_machine.query_at_point_in_time(
            request.target_date, request.object_type, request.filters
        )
    except NoBackupDataError as e:
        raise NoBackupData(str(e))


@router.post("/compare", response_model=ComparisonResult)
async def compare_over_time(
    request: CompareRequest,
    time_machine: TimeMachine = Depends(get_time_machine)
):
    """Record sets at two dates and their difference in count."""
    try:
        return time_machine.compare_data_over_time(
            request.start_date, request.end_date, request.object_type, request.filters
        )
    except NoBackupDataError as e:
        raise NoBackupData(str(e))


@router.get("/history/{object_type}/{record_id}", response_model=RecordHistory)
async def record_history(
    record_id: str,
    object_type: str = Path(..., pattern=OBJECT_TYPE_PATTERN),
    time_machine: TimeMachine = Depends(get_time_machine)
):
    """Every captured snapshot of one record, oldest first."""
    try:
        return time_machine.get_record_history(record_id, object_type)
    except NoBackupDataError as e:
        raise NoBackupData(str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
