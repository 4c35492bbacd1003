"""Configuration management for sf-time-machine."""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class FetcherConfig:
    """Binary content download configuration."""
    parallel_limit: int = 5
    retry_attempts: int = 3
    backoff_base: float = 1.0  # seconds, doubled per attempt
    max_backoff: float = 30.0
    request_timeout: float = 60.0
    retry_on_status: tuple = (429, 500, 502, 503, 504)

    @classmethod
    def from_env(cls) -> 'FetcherConfig':
        """Create config from environment variables."""
        return cls(
            parallel_limit=int(os.getenv("FETCH_PARALLEL_LIMIT", "5")),
            retry_attempts=int(os.getenv("FETCH_RETRY_ATTEMPTS", "3")),
            backoff_base=float(os.getenv("FETCH_BACKOFF_BASE", "1.0")),
            max_backoff=float(os.getenv("FETCH_MAX_BACKOFF", "30.0")),
            request_timeout=float(os.getenv("FETCH_REQUEST_TIMEOUT", "60.0"))
        )

    def __post_init__(self):
        """Validate configuration."""
        if not 1 <= self.parallel_limit <= 10:
            raise ValueError(f"parallel_limit must be between 1 and 10, got {self.parallel_limit}")
        if self.retry_attempts <= 0:
            raise ValueError(f"retry_attempts must be positive, got {self.retry_attempts}")
        if self.backoff_base < 0:
            raise ValueError(f"backoff_base must be non-negative, got {self.backoff_base}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")


@dataclass(frozen=True)
class BackupConfig:
    """Backup run layout and query configuration."""
    output_directory: str = "./backups"
    run_prefix: str = "salesforce-backup"
    api_version: str = "58.0"
    max_fields_per_object: Optional[int] = None  # None = every non-binary field

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables."""
        max_fields = os.getenv("BACKUP_MAX_FIELDS_PER_OBJECT")
        return cls(
            output_directory=os.getenv("BACKUP_DIR", "./backups"),
            run_prefix=os.getenv("BACKUP_RUN_PREFIX", "salesforce-backup"),
            api_version=os.getenv("SF_API_VERSION", "58.0"),
            max_fields_per_object=int(max_fields) if max_fields else None
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.run_prefix:
            raise ValueError("run_prefix must not be empty")
        if self.max_fields_per_object is not None and self.max_fields_per_object <= 0:
            raise ValueError(f"max_fields_per_object must be positive, got {self.max_fields_per_object}")


@dataclass(frozen=True)
class JobConfig:
    """Backup job registry configuration."""
    retention_hours: float = 24.0

    @classmethod
    def from_env(cls) -> 'JobConfig':
        """Create config from environment variables."""
        return cls(
            retention_hours=float(os.getenv("BACKUP_JOB_RETENTION_HOURS", "24"))
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.retention_hours < 0:
            raise ValueError(f"retention_hours must be non-negative, got {self.retention_hours}")


@dataclass(frozen=True)
class TimeMachineConfig:
    """Main configuration aggregating all settings."""
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    jobs: JobConfig = field(default_factory=JobConfig)

    @classmethod
    def from_env(cls) -> 'TimeMachineConfig':
        """Create complete config from environment variables."""
        return cls(
            fetcher=FetcherConfig.from_env(),
            backup=BackupConfig.from_env(),
            jobs=JobConfig.from_env()
        )
