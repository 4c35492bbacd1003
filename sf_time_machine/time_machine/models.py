"""Data models for point-in-time queries over backup runs."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import computed_field

from ..backup.models import BackupManifest, BackupType, CamelModel

Record = Dict[str, Any]


class BackupRun(CamelModel):
    """A completed run as found on disk."""
    name: str
    path: str
    timestamp: datetime
    manifest: BackupManifest


class RunSummary(CamelModel):
    """Listing entry for one run directory, readable or not."""
    name: str
    path: str
    timestamp: Optional[datetime] = None
    backup_type: Optional[BackupType] = None
    duration: Optional[float] = None
    total_files: int = 0
    size_mb: float = 0.0
    errors: int = 0
    source_instance: Optional[str] = None
    object_types: List[str] = []
    read_error: Optional[str] = None


class PointInTimeResult(CamelModel):
    object_type: str
    target_time: datetime
    snapshot_date: Optional[datetime] = None
    run_name: Optional[str] = None
    records: List[Record] = []
    message: str = ""
    # Object types the resolved run does hold, set when ``object_type`` was not captured
    available_object_types: Optional[List[str]] = None

    @computed_field
    @property
    def count(self) -> int:
        return len(self.records)


class SnapshotData(CamelModel):
    """One side of a comparison."""
    date: Optional[datetime] = None
    run_name: Optional[str] = None
    data: List[Record] = []

    @computed_field
    @property
    def count(self) -> int:
        return len(self.data)


class ComparisonResult(CamelModel):
    """Record sets of two runs and their signed count delta. No field diffing."""
    object_type: str
    start_snapshot: SnapshotData
    end_snapshot: SnapshotData

    @computed_field
    @property
    def count_difference(self) -> int:
        return self.end_snapshot.count - self.start_snapshot.count


class HistoryEntry(CamelModel):
    timestamp: datetime
    run_name: str
    data: Record


class RecordHistory(CamelModel):
    record_id: str
    object_type: str
    history: List[HistoryEntry] = []

    @computed_field
    @property
    def changes_count(self) -> int:
        return len(self.history)
