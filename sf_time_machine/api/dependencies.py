"""Dependency injection for FastAPI."""

from typing import TYPE_CHECKING

from fastapi import Request

from .exceptions import DataClientUnavailable

if TYPE_CHECKING:
    from sf_time_machine.client import BaseDataClient
    from sf_time_machine.jobs import JobManager
    from sf_time_machine.time_machine import TimeMachine


async def get_job_manager(request: Request) -> "JobManager":
    """Get the job registry from app state."""
    return request.app.state.job_manager


async def get_time_machine(request: Request) -> "TimeMachine":
    """Get the time machine over the configured backup directory."""
    return request.app.state.time_machine


async def get_data_client(request: Request) -> "BaseDataClient":
    """Get the data client, 503 when no connection is configured."""
    client = getattr(request.app.state, "data_client", None)
    if client is None:
        raise DataClientUnavailable()
    return client
