"""Test utilities for sf-time-machine tests."""

import asyncio
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import httpx

from sf_time_machine._utils import parse_timestamp
from sf_time_machine.backup.models import BackupInfo, BackupManifest, BackupOptions, BackupType, DownloadStats
from sf_time_machine.backup.utils import MANIFEST_FILENAME, generate_run_name, save_json
from sf_time_machine.client import BaseDataClient, QueryPage
from sf_time_machine.exceptions import DataClientError

_FROM_PATTERN = re.compile(r"\bFROM\s+(\w+)")


class FakeDataClient(BaseDataClient):
    """In-memory data client recording every call it receives."""

    def __init__(
        self,
        objects: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        content: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        files: Optional[Dict[str, bytes]] = None,
        failing_objects: Iterable[str] = (),
        describe_global_error: Optional[Exception] = None,
        extra_sobjects: Optional[List[Dict[str, Any]]] = None,
        page_size: Optional[int] = None,
        fetch_delay: float = 0.0
    ):
        self.instance_url = "https://example.my.salesforce.com"
        self.api_version = "58.0"
        self.objects = objects or {}
        self.content = content or {}
        self.files = files or {}
        self.failing_objects = dict.fromkeys(failing_objects, DataClientError("describe failed", 500))
        self.describe_global_error = describe_global_error
        self.extra_sobjects = extra_sobjects or []
        self.page_size = page_size
        self.fetch_delay = fetch_delay

        self.queries: List[str] = []
        self.described: List[str] = []
        self.fetched: List[str] = []
        self.describe_global_calls = 0

    def fail_object(self, name: str, error: Exception) -> None:
        self.failing_objects[name] = error

    async def describe_global(self) -> List[Dict[str, Any]]:
        self.describe_global_calls += 1
        if self.describe_global_error is not None:
            raise self.describe_global_error
        names = list(self.objects) + [n for n in self.failing_objects if n not in self.objects]
        return [{"name": name, "queryable": True} for name in names] + self.extra_sobjects

    async def describe(self, object_name: str) -> Dict[str, Any]:
        self.described.append(object_name)
        if object_name in self.failing_objects:
            raise self.failing_objects[object_name]

        field_names = ["Id", "Name", "LastModifiedDate"]
        for record in self.objects.get(object_name, []):
            field_names.extend(k for k in record if k not in field_names)
        fields = [{"name": name, "type": "string"} for name in field_names]
        fields.append({"name": "Photo", "type": "base64"})
        return {"name": object_name, "fields": fields}

    async def query(self, soql: str) -> QueryPage:
        self.queries.append(soql)
        object_name = _FROM_PATTERN.search(soql).group(1)
        records = self.content.get(object_name, self.objects.get(object_name, []))
        return self._page(object_name, records, 0)

    async def query_more(self, next_records_url: str) -> QueryPage:
        _, object_name, offset = next_records_url.rsplit("/", 2)
        records = self.content.get(object_name, self.objects.get(object_name, []))
        return self._page(object_name, records, int(offset))

    def _page(self, object_name: str, records: List[Dict[str, Any]], offset: int) -> QueryPage:
        size = self.page_size or max(len(records), 1)
        chunk = records[offset:offset + size]
        done = offset + size >= len(records)
        return QueryPage(
            records=[dict(r) for r in chunk],
            done=done,
            next_records_url=None if done else f"/query-more/{object_name}/{offset + size}",
            total_size=len(records)
        )

    async def fetch_bytes(self, url: str) -> bytes:
        self.fetched.append(url)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if url not in self.files:
            raise status_error(404, url)
        return self.files[url]


def status_error(status_code: int, url: str = "https://example.my.salesforce.com/file") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


def make_run(
    backup_dir: Path,
    timestamp: str,
    data: Dict[str, Any],
    prefix: str = "salesforce-backup",
    with_manifest: bool = True
) -> Path:
    """Lay out a run directory the way a finished backup leaves it."""
    started_at = parse_timestamp(timestamp)
    run_dir = Path(backup_dir) / generate_run_name(prefix, started_at)

    (run_dir / "data").mkdir(parents=True, exist_ok=True)
    for object_type, records in data.items():
        save_json(records, run_dir / "data" / f"{object_type}.json")

    if with_manifest:
        manifest = BackupManifest(
            backup_info=BackupInfo(timestamp=started_at, type=BackupType.FULL, duration=1.5),
            options=BackupOptions(output_directory=str(backup_dir)),
            download_stats=DownloadStats(objects=len(data))
        )
        save_json(manifest.model_dump(mode="json", by_alias=True), run_dir / MANIFEST_FILENAME)
    return run_dir
