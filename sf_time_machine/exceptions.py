"""Exception hierarchy for backup and time machine operations."""

from typing import Optional


class TimeMachineError(Exception):
    """Base exception for all sf-time-machine errors."""
    pass


class BackupOptionsError(TimeMachineError, ValueError):
    """Backup options failed validation."""
    pass


class DataClientError(TimeMachineError):
    """The remote data platform rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DataClientAuthError(DataClientError):
    """Authentication or authorization with the remote platform failed."""
    pass


class FetchError(TimeMachineError):
    """A binary payload could not be fetched after all retry attempts."""

    NETWORK = "network"
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"

    def __init__(
        self,
        kind: str,
        url: str,
        message: str,
        attempts: int = 1,
        status_code: Optional[int] = None
    ):
        super().__init__(f"{kind} error fetching {url} after {attempts} attempt(s): {message}")
        self.kind = kind
        self.url = url
        self.attempts = attempts
        self.status_code = status_code


class JobNotFoundError(TimeMachineError, LookupError):
    def __init__(self, job_id: str):
        super().__init__(f"Backup job not found: {job_id}")
        self.job_id = job_id


class RunReadError(TimeMachineError):
    """A run's manifest or data file is missing or malformed."""

    def __init__(self, run_path: str, reason: str):
        super().__init__(f"Cannot read backup run {run_path}: {reason}")
        self.run_path = run_path
        self.reason = reason


class NoBackupDataError(TimeMachineError):
    """No readable backup run exists in the backup directory."""

    def __init__(self, backup_directory: str):
        super().__init__(f"No backup data available in {backup_directory}")
        self.backup_directory = backup_directory
