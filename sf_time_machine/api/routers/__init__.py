"""API routers."""

from . import backup, health, jobs, time_machine

__all__ = ["backup", "health", "jobs", "time_machine"]
