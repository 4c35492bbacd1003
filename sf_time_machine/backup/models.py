"""Data models for backup runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .._utils import bytes_to_mb, parse_timestamp
from ..exceptions import BackupOptionsError


class CamelModel(BaseModel):
    """Base model stored on disk with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BackupType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    FILES_ONLY = "files_only"


class ContentCategory(str, Enum):
    """Binary content families, valued by their directory under ``files/``."""
    CONTENT_VERSIONS = "content-versions"
    ATTACHMENTS = "attachments"
    DOCUMENTS = "documents"

    @property
    def object_type(self) -> str:
        return CATEGORY_OBJECT_TYPES[self]


CATEGORY_OBJECT_TYPES = {
    ContentCategory.CONTENT_VERSIONS: "ContentVersion",
    ContentCategory.ATTACHMENTS: "Attachment",
    ContentCategory.DOCUMENTS: "Document",
}


class BackupOptions(CamelModel):
    """Options recognized when starting a backup."""

    backup_type: BackupType = BackupType.FULL
    since_date: Optional[datetime] = None
    output_directory: Optional[str] = None
    include_files: bool = True
    include_attachments: bool = True
    include_documents: bool = True
    objects_filter: List[str] = Field(default_factory=list)
    parallel_downloads: int = Field(default=5, ge=1, le=10)

    @field_validator("since_date", mode="before")
    @classmethod
    def parse_since_date(cls, v):
        """Accept ISO strings with a trailing Z and normalize to UTC."""
        if v is None or v == "":
            return None
        try:
            return parse_timestamp(v)
        except (TypeError, ValueError):
            raise ValueError("Invalid since_date format. Use ISO format: YYYY-MM-DDTHH:mm:ss.sssZ")

    @model_validator(mode="after")
    def require_since_for_incremental(self):
        if self.backup_type == BackupType.INCREMENTAL and self.since_date is None:
            raise ValueError("since_date is required for incremental backups")
        return self

    @classmethod
    def from_input(cls, options: Union["BackupOptions", Dict[str, Any], None]) -> "BackupOptions":
        """Build validated options, raising ``BackupOptionsError`` on bad input."""
        if isinstance(options, cls):
            return options
        try:
            return cls.model_validate(options or {})
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise BackupOptionsError(f"Invalid backup options: {messages}") from e

    def enabled_categories(self) -> List[ContentCategory]:
        flags = {
            ContentCategory.CONTENT_VERSIONS: self.include_files,
            ContentCategory.ATTACHMENTS: self.include_attachments,
            ContentCategory.DOCUMENTS: self.include_documents,
        }
        return [category for category, enabled in flags.items() if enabled]


class DownloadStats(CamelModel):
    """Statistics accumulated during a run."""

    content_versions: int = 0
    attachments: int = 0
    documents: int = 0
    objects: int = 0
    records: int = 0
    total_bytes: int = 0
    errors: int = 0

    @computed_field(alias="totalMB")
    @property
    def total_mb(self) -> float:
        return bytes_to_mb(self.total_bytes)

    @property
    def total_files(self) -> int:
        return self.content_versions + self.attachments + self.documents

    def category_count(self, category: ContentCategory) -> int:
        return getattr(self, CATEGORY_STAT_FIELDS[category])


CATEGORY_STAT_FIELDS = {
    ContentCategory.CONTENT_VERSIONS: "content_versions",
    ContentCategory.ATTACHMENTS: "attachments",
    ContentCategory.DOCUMENTS: "documents",
}


class BackupInfo(CamelModel):
    timestamp: datetime
    completed_at: Optional[datetime] = None
    type: BackupType
    duration: float = 0.0
    source_instance: Optional[str] = None
    api_version: Optional[str] = None


class BackupDirectories(CamelModel):
    metadata: str = "metadata/"
    data: str = "data/"
    files: str = "files/"
    logs: str = "logs/"


class BackupManifest(CamelModel):
    """Run manifest, written last to mark the run complete."""

    backup_info: BackupInfo
    options: BackupOptions
    download_stats: DownloadStats = Field(default_factory=DownloadStats)
    directories: BackupDirectories = Field(default_factory=BackupDirectories)


class FileDownloadResult(CamelModel):
    record_id: str
    category: ContentCategory
    name: Optional[str] = None
    success: bool
    size: int = 0
    path: Optional[str] = None
    error: Optional[str] = None


class RunResult(CamelModel):
    """Outcome of one orchestrated backup run."""

    success: bool = True
    backup_directory: str
    timestamp: datetime
    backup_type: BackupType
    duration: float
    stats: DownloadStats
