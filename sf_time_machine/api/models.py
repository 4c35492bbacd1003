"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from sf_time_machine._utils import utc_now
from sf_time_machine.backup.models import CamelModel

OBJECT_TYPE_PATTERN = r"^[A-Za-z][A-Za-z0-9_]*$"


class QueryRequest(CamelModel):
    target_date: datetime
    object_type: str = Field(..., pattern=OBJECT_TYPE_PATTERN)
    filters: Optional[Dict[str, Any]] = None


class CompareRequest(CamelModel):
    start_date: datetime
    end_date: datetime
    object_type: str = Field(..., pattern=OBJECT_TYPE_PATTERN)
    filters: Optional[Dict[str, Any]] = None


class HealthStatus(CamelModel):
    status: str  # "healthy", "degraded"
    data_client: bool
    backup_directory: bool
    running_jobs: int = 0
    timestamp: datetime = Field(default_factory=utc_now)
