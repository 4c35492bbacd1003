"""Custom exceptions for FastAPI application."""

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_503_SERVICE_UNAVAILABLE,
)


class TimeMachineAPIError(HTTPException):
    """Base exception for sf-time-machine API errors."""
    pass


class JobNotFound(TimeMachineAPIError):
    def __init__(self, job_id: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Job {job_id} not found")


class NoBackupData(TimeMachineAPIError):
    def __init__(self, detail: str = "No backup data available"):
        super().__init__(HTTP_404_NOT_FOUND, detail)


class InvalidBackupOptions(TimeMachineAPIError):
    def __init__(self, detail: str):
        super().__init__(HTTP_400_BAD_REQUEST, detail)


class DataClientUnavailable(TimeMachineAPIError):
    def __init__(self):
        super().__init__(HTTP_503_SERVICE_UNAVAILABLE, "Data platform connection is not configured")
