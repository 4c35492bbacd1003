from .engine import TimeMachine
from .models import (
    BackupRun,
    ComparisonResult,
    HistoryEntry,
    PointInTimeResult,
    RecordHistory,
    RunSummary,
    SnapshotData,
)

__all__ = [
    "TimeMachine",
    "BackupRun",
    "ComparisonResult",
    "HistoryEntry",
    "PointInTimeResult",
    "RecordHistory",
    "RunSummary",
    "SnapshotData",
]
