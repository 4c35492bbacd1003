from .fetcher import ContentFetcher, RetryPolicy
from .manager import BackupManager
from .models import BackupManifest, BackupOptions, BackupType, ContentCategory, DownloadStats, RunResult
from .writer import SnapshotWriter

__all__ = [
    "BackupManager",
    "BackupManifest",
    "BackupOptions",
    "BackupType",
    "ContentCategory",
    "ContentFetcher",
    "DownloadStats",
    "RetryPolicy",
    "RunResult",
    "SnapshotWriter",
]
