"""Backup orchestration against a remote data client."""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from .._utils import current_run_var, format_timestamp, logger, RunContextFilter, utc_now
from ..client import BaseDataClient
from ..config import TimeMachineConfig
from ..exceptions import DataClientAuthError
from .fetcher import ContentFetcher
from .models import BackupOptions, BackupType, ContentCategory, FileDownloadResult, RunResult
from .utils import generate_run_name
from .writer import SnapshotWriter

ProgressCallback = Callable[[int, str], None]

CONTENT_QUERIES = {
    ContentCategory.CONTENT_VERSIONS: (
        "SELECT Id, Title, FileType, ContentSize, ContentDocumentId, LastModifiedDate "
        "FROM ContentVersion WHERE IsLatest = true"
    ),
    ContentCategory.ATTACHMENTS: (
        "SELECT Id, Name, ContentType, BodyLength, ParentId, LastModifiedDate FROM Attachment"
    ),
    ContentCategory.DOCUMENTS: (
        "SELECT Id, Name, Type, ContentType, BodyLength, FolderId, LastModifiedDate FROM Document"
    ),
}

EXCLUDED_FIELD_TYPES = {"base64"}
EXCLUDED_FIELD_NAMES = {"Body"}

# Run directories handed out in this process, reserved before they exist on disk
_allocated_run_dirs: Set[Path] = set()


class BackupManager:
    """Orchestrate one backup run: object data first, then binary content,
    then the manifest.

    Per-object and per-file failures are counted and the run carries on.
    Failure to list the remote schema, authentication failures and disk
    errors on the run directory propagate to the caller.
    """

    def __init__(
        self,
        client: BaseDataClient,
        options: Union[BackupOptions, Dict[str, Any], None] = None,
        config: Optional[TimeMachineConfig] = None,
        started_at: Optional[datetime] = None
    ):
        """Initialize backup manager.

        Allocates the run directory name without touching the disk.

        Args:
            client: Authenticated data client
            options: Backup options (model or dict)
            config: Engine configuration, defaults to built-in defaults
            started_at: Run creation timestamp, defaults to now
        """
        self.client = client
        self.config = config or TimeMachineConfig()

        options = BackupOptions.from_input(options)
        self.output_directory = Path(options.output_directory or self.config.backup.output_directory)
        self.options = options.model_copy(update={"output_directory": str(self.output_directory)})

        self.started_at, self.run_name, self.backup_dir = self._allocate_run_dir(started_at or utc_now())

        self.fetcher = ContentFetcher.from_config(
            client.fetch_bytes,
            self.config.fetcher,
            parallel_limit=self.options.parallel_downloads
        )
        self.writer = SnapshotWriter(self.backup_dir, self.fetcher)
        self._progress_callback: Optional[ProgressCallback] = None

    @property
    def backup_type(self) -> BackupType:
        return self.options.backup_type

    @property
    def since_date(self) -> Optional[datetime]:
        if self.backup_type == BackupType.FULL:
            return None
        return self.options.since_date

    async def run(self, progress_callback: Optional[ProgressCallback] = None) -> RunResult:
        """Execute the backup run.

        Args:
            progress_callback: Called with ``(percent, message)`` as the run advances

        Returns:
            RunResult with directory, duration and statistics
        """
        self._progress_callback = progress_callback
        token = current_run_var.set(self.run_name)
        handler = None

        try:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            # Runs are write-once: never reuse a directory created elsewhere
            self.backup_dir.mkdir(exist_ok=False)
            self.writer.create_structure()
            handler = self._attach_run_log()

            logger.info(f"Starting {self.backup_type.value} backup: {self.backup_dir}")
            self._report(5, "Backup directory created")

            categories = self.options.enabled_categories()
            object_phase_end = 60 if categories else 95

            if self.backup_type != BackupType.FILES_ONLY:
                await self._backup_object_data(10, object_phase_end)

            if categories:
                await self._backup_files(categories, object_phase_end, 95)

            manifest = await self.writer.write_manifest(
                self.backup_type,
                self.options,
                self.started_at,
                source_instance=getattr(self.client, "instance_url", None),
                api_version=getattr(self.client, "api_version", self.config.backup.api_version)
            )

            stats = manifest.download_stats
            logger.info(
                f"Backup complete in {manifest.backup_info.duration:.1f}s: {stats.objects} objects, "
                f"{stats.records} records, {stats.total_files} files ({stats.total_mb} MB), "
                f"{stats.errors} errors"
            )
            self._report(100, "Backup completed")

            return RunResult(
                success=True,
                backup_directory=str(self.backup_dir),
                timestamp=self.started_at,
                backup_type=self.backup_type,
                duration=manifest.backup_info.duration,
                stats=stats
            )

        finally:
            if handler is not None:
                logger.removeHandler(handler)
                handler.close()
            current_run_var.reset(token)

    # Private helper methods

    def _allocate_run_dir(self, started_at: datetime) -> Tuple[datetime, str, Path]:
        """Reserve a run directory no other run in this process or on disk uses.

        Names have millisecond precision; on a clash the timestamp moves
        forward one millisecond so names stay ordered by creation.
        """
        while True:
            run_name = generate_run_name(self.config.backup.run_prefix, started_at)
            backup_dir = self.output_directory / run_name
            key = backup_dir.resolve()
            if key not in _allocated_run_dirs and not backup_dir.exists():
                _allocated_run_dirs.add(key)
                return started_at, run_name, backup_dir
            started_at += timedelta(milliseconds=1)

    def _report(self, percent: int, message: str) -> None:
        logger.debug(f"[{percent}%] {message}")
        if self._progress_callback is not None:
            self._progress_callback(percent, message)

    def _attach_run_log(self) -> logging.Handler:
        """Mirror this run's log records into ``logs/backup.log``."""
        handler = logging.FileHandler(self.writer.logs_dir / "backup.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        handler.addFilter(RunContextFilter(self.run_name))
        logger.addHandler(handler)
        return handler

    def _since_condition(self) -> Optional[str]:
        if self.since_date is None:
            return None
        return f"LastModifiedDate >= {format_timestamp(self.since_date)}"

    def _select_objects(self, objects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        wanted = set(self.options.objects_filter)
        return [
            obj for obj in objects
            if obj.get("queryable")
            and not obj["name"].endswith("__History")
            and (not wanted or obj["name"] in wanted)
        ]

    def _select_fields(self, fields: List[Dict[str, Any]]) -> List[str]:
        names = [
            f["name"] for f in fields
            if f.get("type") not in EXCLUDED_FIELD_TYPES and f["name"] not in EXCLUDED_FIELD_NAMES
        ]
        names = ["Id"] + [name for name in names if name != "Id"]

        limit = self.config.backup.max_fields_per_object
        if limit:
            names = names[:limit]
        return names

    async def _query_all(self, soql: str) -> List[Dict[str, Any]]:
        """Run a query and follow pagination to the last page."""
        page = await self.client.query(soql)
        records = list(page["records"])

        while not page["done"] and page.get("next_records_url"):
            page = await self.client.query_more(page["next_records_url"])
            records.extend(page["records"])

        return records

    async def _backup_object_data(self, progress_start: int, progress_end: int) -> None:
        objects = await self.client.describe_global()
        data_objects = self._select_objects(objects)

        self.writer.write_metadata(
            objects,
            getattr(self.client, "instance_url", None),
            getattr(self.client, "api_version", self.config.backup.api_version)
        )
        logger.info(f"Backing up {len(data_objects)} queryable objects")

        total = len(data_objects)
        for index, obj in enumerate(data_objects, start=1):
            name = obj["name"]
            try:
                await self._backup_object(name)
            except DataClientAuthError:
                raise
            except Exception as e:
                await self.writer.record_error("object", name, e)

            percent = progress_start + int((progress_end - progress_start) * index / total)
            self._report(percent, f"Backed up {index}/{total} objects")

    async def _backup_object(self, object_name: str) -> int:
        describe = await self.client.describe(object_name)
        fields = self._select_fields(describe.get("fields", []))

        soql = f"SELECT {', '.join(fields)} FROM {object_name}"
        condition = self._since_condition()
        if condition:
            soql += f" WHERE {condition}"

        records = await self._query_all(soql)
        if records:
            await self.writer.write_object_data(object_name, records)
            logger.info(f"{object_name}: {len(records)} records ({len(fields)} fields)")
        else:
            logger.info(f"{object_name}: no records found")
        return len(records)

    def _content_query(self, category: ContentCategory) -> str:
        soql = CONTENT_QUERIES[category]
        condition = self._since_condition()
        if condition:
            soql += f" AND {condition}" if " WHERE " in soql else f" WHERE {condition}"
        return soql

    async def _backup_files(
        self,
        categories: List[ContentCategory],
        progress_start: int,
        progress_end: int
    ) -> List[FileDownloadResult]:
        pending: List[Tuple[ContentCategory, Dict[str, Any]]] = []

        for category in categories:
            try:
                records = await self._query_all(self._content_query(category))
            except DataClientAuthError:
                raise
            except Exception as e:
                await self.writer.record_error("content query", category.object_type, e)
                continue

            logger.info(f"Found {len(records)} {category.object_type} files")
            if records and not self.writer.has_object_data(category.object_type):
                await self.writer.write_object_data(category.object_type, records)
            pending.extend((category, record) for record in records)

        if not pending:
            logger.info("No files found to backup")
            return []

        total = len(pending)
        completed = 0
        logger.info(f"Downloading {total} files with {self.fetcher.parallel_limit} parallel downloads")

        async def download(category: ContentCategory, record: Dict[str, Any]) -> FileDownloadResult:
            nonlocal completed
            url = self.client.content_url(category.object_type, record["Id"])
            result = await self.writer.write_binary(category, record, url)
            completed += 1
            percent = progress_start + int((progress_end - progress_start) * completed / total)
            self._report(percent, f"Downloaded {completed}/{total} files")
            return result

        results = await asyncio.gather(*[download(category, record) for category, record in pending])

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Successfully downloaded: {total - failed} files")
        if failed:
            logger.warning(f"Failed downloads: {failed} files")

        self.writer.write_file_manifest(list(results))
        return list(results)
