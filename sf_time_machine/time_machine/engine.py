"""Point-in-time queries over the sequence of completed backup runs."""

import re
from bisect import bisect_right
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .._utils import logger, parse_timestamp
from ..backup.models import BackupManifest
from ..backup.utils import MANIFEST_FILENAME, load_json
from ..exceptions import NoBackupDataError, RunReadError
from .models import (
    BackupRun,
    ComparisonResult,
    HistoryEntry,
    PointInTimeResult,
    Record,
    RecordHistory,
    RunSummary,
    SnapshotData,
)

TimeLike = Union[str, datetime]

_OBJECT_TYPE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


class TimeMachine:
    """Answer "what did the data look like at time T" from a backup tree.

    Every call re-reads the tree, so a run becomes visible as soon as its
    manifest is written and in-flight runs (no manifest yet) are ignored.
    """

    def __init__(self, backup_directory: Union[str, Path], run_prefix: str = "salesforce-backup"):
        self.backup_directory = Path(backup_directory)
        self.run_prefix = run_prefix

    # Run discovery

    def scan_runs(self) -> Tuple[List[BackupRun], List[RunReadError]]:
        """Read every run directory.

        Returns:
            Readable runs sorted by timestamp ascending, and read errors for
            the directories that were skipped
        """
        runs: List[BackupRun] = []
        errors: List[RunReadError] = []

        if not self.backup_directory.is_dir():
            return runs, errors

        for item in sorted(self.backup_directory.iterdir()):
            if not item.is_dir() or not item.name.startswith(f"{self.run_prefix}-"):
                continue
            try:
                runs.append(self._read_run(item))
            except RunReadError as e:
                errors.append(e)

        runs.sort(key=lambda run: run.timestamp)
        return runs, errors

    def list_runs(self) -> List[BackupRun]:
        """Readable runs sorted by timestamp ascending."""
        runs, _ = self.scan_runs()
        return runs

    def _read_run(self, path: Path) -> BackupRun:
        manifest_path = path / MANIFEST_FILENAME
        if not manifest_path.exists():
            logger.debug(f"Skipping {path.name}: no manifest (incomplete or in progress)")
            raise RunReadError(str(path), "manifest missing (incomplete or interrupted run)")

        try:
            manifest = BackupManifest.model_validate(load_json(manifest_path))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read manifest for backup {path.name}: {e}")
            raise RunReadError(str(path), f"malformed manifest: {e}") from e

        return BackupRun(
            name=path.name,
            path=str(path),
            timestamp=manifest.backup_info.timestamp,
            manifest=manifest
        )

    def _readable_runs(self) -> List[BackupRun]:
        runs = self.list_runs()
        if not runs:
            raise NoBackupDataError(str(self.backup_directory))
        return runs

    @staticmethod
    def resolve_as_of(target_time: TimeLike, runs: Sequence[BackupRun]) -> Optional[BackupRun]:
        """Select the run with the greatest timestamp not after ``target_time``."""
        target = parse_timestamp(target_time)
        ordered = sorted(runs, key=lambda run: run.timestamp)
        index = bisect_right([run.timestamp for run in ordered], target)
        return ordered[index - 1] if index else None

    @staticmethod
    def _has_object_data(run: BackupRun, object_type: str) -> bool:
        return (Path(run.path) / "data" / f"{object_type}.json").exists()

    def available_object_types(self, run: BackupRun) -> List[str]:
        data_dir = Path(run.path) / "data"
        if not data_dir.is_dir():
            return []
        return sorted(p.stem for p in data_dir.glob("*.json"))

    def summarize_runs(self) -> List[RunSummary]:
        """Summaries of every run directory, newest first, unreadable ones included."""
        runs, errors = self.scan_runs()
        summaries = []

        for run in reversed(runs):
            info = run.manifest.backup_info
            stats = run.manifest.download_stats
            summaries.append(RunSummary(
                name=run.name,
                path=run.path,
                timestamp=run.timestamp,
                backup_type=info.type,
                duration=info.duration,
                total_files=stats.total_files,
                size_mb=stats.total_mb,
                errors=stats.errors,
                source_instance=info.source_instance,
                object_types=self.available_object_types(run)
            ))

        for error in errors:
            summaries.append(RunSummary(
                name=Path(error.run_path).name,
                path=error.run_path,
                read_error=error.reason
            ))

        return summaries

    # Record loading

    def _load_records(self, run: BackupRun, object_type: str) -> List[Record]:
        """Records of ``object_type`` in ``run``, empty when the type was not captured."""
        data_file = Path(run.path) / "data" / f"{object_type}.json"
        if not data_file.exists():
            return []

        try:
            data = load_json(data_file)
        except (OSError, ValueError) as e:
            raise RunReadError(run.path, f"malformed {object_type} data: {e}") from e

        if not isinstance(data, list) or not all(isinstance(record, dict) for record in data):
            raise RunReadError(run.path, f"{object_type} data is not a list of records")
        return data

    def _resolve_and_load(
        self,
        target_time: TimeLike,
        object_type: str,
        runs: List[BackupRun]
    ) -> Tuple[Optional[BackupRun], List[Record]]:
        """Resolve the run as of ``target_time``, skipping runs whose data is unreadable."""
        candidates = list(runs)
        while True:
            run = self.resolve_as_of(target_time, candidates)
            if run is None:
                return None, []
            try:
                return run, self._load_records(run, object_type)
            except RunReadError as e:
                logger.warning(f"Skipping unreadable run: {e}")
                candidates = [c for c in candidates if c is not run]

    @staticmethod
    def apply_filters(records: List[Record], filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        """Keep records whose fields exactly equal every filter value."""
        if not filters:
            return list(records)
        return [
            record for record in records
            if all(field in record and record[field] == value for field, value in filters.items())
        ]

    @staticmethod
    def _check_object_type(object_type: str) -> None:
        if not _OBJECT_TYPE_PATTERN.match(object_type or ""):
            raise ValueError(f"Invalid object type: {object_type!r}")

    # Queries

    def query_at_point_in_time(
        self,
        target_time: TimeLike,
        object_type: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> PointInTimeResult:
        """Records of ``object_type`` as they existed at ``target_time``.

        Raises:
            NoBackupDataError: the backup directory has no readable run
        """
        self._check_object_type(object_type)
        target = parse_timestamp(target_time)
        run, records = self._resolve_and_load(target, object_type, self._readable_runs())

        if run is None:
            return PointInTimeResult(
                object_type=object_type,
                target_time=target,
                message=f"No backup exists at or before {target.isoformat()}"
            )

        if not self._has_object_data(run, object_type):
            return PointInTimeResult(
                object_type=object_type,
                target_time=target,
                snapshot_date=run.timestamp,
                run_name=run.name,
                message=f"No data found for object type '{object_type}' in backup {run.name}",
                available_object_types=self.available_object_types(run)
            )

        return PointInTimeResult(
            object_type=object_type,
            target_time=target,
            snapshot_date=run.timestamp,
            run_name=run.name,
            records=self.apply_filters(records, filters),
            message=f"Data as it existed on {run.timestamp.isoformat()}"
        )

    def compare_data_over_time(
        self,
        time_a: TimeLike,
        time_b: TimeLike,
        object_type: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> ComparisonResult:
        """Record sets as of two times and the signed difference in count.

        Each time is resolved independently; a time before the first run
        yields an empty snapshot.
        """
        self._check_object_type(object_type)
        runs = self._readable_runs()

        snapshots = []
        for target in (time_a, time_b):
            run, records = self._resolve_and_load(target, object_type, runs)
            snapshots.append(SnapshotData(
                date=run.timestamp if run else None,
                run_name=run.name if run else None,
                data=self.apply_filters(records, filters)
            ))

        return ComparisonResult(
            object_type=object_type,
            start_snapshot=snapshots[0],
            end_snapshot=snapshots[1]
        )

    def get_record_history(self, record_id: str, object_type: str) -> RecordHistory:
        """Snapshots of one record from every run that contains it, oldest first.

        A run without the record is a gap, not a deletion.
        """
        self._check_object_type(object_type)
        history = []

        for run in self._readable_runs():
            try:
                records = self._load_records(run, object_type)
            except RunReadError as e:
                logger.warning(f"Skipping unreadable run: {e}")
                continue

            match = next((r for r in records if r.get("Id") == record_id), None)
            if match is not None:
                history.append(HistoryEntry(timestamp=run.timestamp, run_name=run.name, data=match))

        return RecordHistory(record_id=record_id, object_type=object_type, history=history)
