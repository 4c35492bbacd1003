"""Persist one backup run's records, payloads and manifest."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .._utils import format_timestamp, logger, utc_now
from .fetcher import ContentFetcher
from .models import (
    CATEGORY_STAT_FIELDS,
    BackupInfo,
    BackupManifest,
    BackupOptions,
    BackupType,
    ContentCategory,
    DownloadStats,
    FileDownloadResult,
)
from .utils import MANIFEST_FILENAME, get_file_extension, save_json, save_manifest
from ..exceptions import FetchError


class SnapshotWriter:
    """Sole writer of a run directory while the run is in progress.

    All statistics go through one ``DownloadStats`` accumulator guarded by an
    ``asyncio.Lock`` so concurrent binary writes never lose updates.
    """

    def __init__(self, backup_dir: Path, fetcher: ContentFetcher):
        self.backup_dir = Path(backup_dir)
        self.fetcher = fetcher
        self.stats = DownloadStats()
        self._record_counts: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    @property
    def metadata_dir(self) -> Path:
        return self.backup_dir / "metadata"

    @property
    def data_dir(self) -> Path:
        return self.backup_dir / "data"

    @property
    def files_dir(self) -> Path:
        return self.backup_dir / "files"

    @property
    def logs_dir(self) -> Path:
        return self.backup_dir / "logs"

    @property
    def manifest_path(self) -> Path:
        return self.backup_dir / MANIFEST_FILENAME

    def create_structure(self) -> None:
        dirs = [self.metadata_dir, self.data_dir, self.logs_dir]
        dirs.extend(self.files_dir / category.value for category in ContentCategory)
        for directory in dirs:
            directory.mkdir(parents=True, exist_ok=True)

    def has_object_data(self, object_type: str) -> bool:
        return object_type in self._record_counts

    async def write_object_data(self, object_type: str, records: List[Dict[str, Any]]) -> Path:
        """Write one object type's records, replacing any earlier write in this run."""
        output_file = self.data_dir / f"{object_type}.json"
        save_json(records, output_file)

        async with self._lock:
            self._record_counts[object_type] = len(records)
            self.stats.objects = len(self._record_counts)
            self.stats.records = sum(self._record_counts.values())

        logger.debug(f"Wrote {len(records)} {object_type} records to {output_file}")
        return output_file

    async def write_binary(
        self,
        category: ContentCategory,
        record: Dict[str, Any],
        url: str
    ) -> FileDownloadResult:
        """Download one payload and store it under ``files/<category>/``.

        Fetch and disk failures are counted as errors and reported in the
        returned result instead of being raised.
        """
        record_id = record["Id"]
        name = record.get("Title") or record.get("Name")
        output_file = self.files_dir / category.value / f"{record_id}{self._extension(category, record)}"

        try:
            data = await self.fetcher.fetch(url)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_bytes(data)
        except (FetchError, OSError) as e:
            await self.record_error(category.value, record_id, e)
            return FileDownloadResult(
                record_id=record_id, category=category, name=name, success=False, error=str(e)
            )

        async with self._lock:
            field = CATEGORY_STAT_FIELDS[category]
            setattr(self.stats, field, getattr(self.stats, field) + 1)
            self.stats.total_bytes += len(data)

        return FileDownloadResult(
            record_id=record_id,
            category=category,
            name=name,
            success=True,
            size=len(data),
            path=str(output_file.relative_to(self.backup_dir))
        )

    async def record_error(self, scope: str, name: str, error: BaseException) -> None:
        """Count a per-item failure without aborting the run."""
        async with self._lock:
            self.stats.errors += 1
        logger.warning(f"{scope} {name}: {error}")

    @staticmethod
    def _extension(category: ContentCategory, record: Dict[str, Any]) -> str:
        if category == ContentCategory.CONTENT_VERSIONS:
            file_type = record.get("FileType")
            return f".{str(file_type).lower()}" if file_type else ".bin"
        return get_file_extension(record.get("ContentType"))

    def write_metadata(
        self,
        objects: List[Dict[str, Any]],
        source_instance: Optional[str],
        api_version: str
    ) -> Path:
        """Record the object list captured from the remote schema."""
        output_file = self.metadata_dir / "objects-schema.json"
        save_json({
            "backupTimestamp": format_timestamp(utc_now()),
            "sourceInstance": source_instance,
            "apiVersion": api_version,
            "totalObjects": len(objects),
            "objects": objects,
        }, output_file)
        logger.info(f"Saved metadata for {len(objects)} objects")
        return output_file

    def write_file_manifest(self, results: List[FileDownloadResult]) -> Path:
        output_file = self.metadata_dir / "file-manifest.json"
        successful = sum(1 for r in results if r.success)
        save_json({
            "totalFiles": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "downloadResults": [r.model_dump(mode="json", by_alias=True) for r in results],
            "stats": self.stats.model_dump(mode="json", by_alias=True),
        }, output_file)
        return output_file

    async def write_manifest(
        self,
        backup_type: BackupType,
        options: BackupOptions,
        started_at: datetime,
        source_instance: Optional[str] = None,
        api_version: Optional[str] = None
    ) -> BackupManifest:
        """Finalize the run. Must be the last write of the run."""
        completed_at = utc_now()
        async with self._lock:
            stats = self.stats.model_copy()

        manifest = BackupManifest(
            backup_info=BackupInfo(
                timestamp=started_at,
                completed_at=completed_at,
                type=backup_type,
                duration=round((completed_at - started_at).total_seconds(), 3),
                source_instance=source_instance,
                api_version=api_version
            ),
            options=options,
            download_stats=stats
        )
        await save_manifest(manifest.model_dump(mode="json", by_alias=True), self.manifest_path)
        return manifest
