"""Data-access handle for the remote object store.

The engine only depends on ``BaseDataClient``. Callers own authentication
and hand in a ready client; ``RestDataClient`` is the stock implementation
over the platform's REST API.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TypedDict

import httpx

from ._utils import logger
from .exceptions import DataClientError, DataClientAuthError


class QueryPage(TypedDict):
    """One page of query results."""
    records: List[Dict[str, Any]]
    done: bool
    next_records_url: Optional[str]
    total_size: int


# Binary body field per content object type
CONTENT_BODY_FIELDS = {
    "ContentVersion": "VersionData",
    "Attachment": "Body",
    "Document": "Body",
}


class BaseDataClient(ABC):
    """Authenticated access to schemas, queries and binary content."""

    instance_url: str = ""
    api_version: str = "58.0"

    @abstractmethod
    async def describe_global(self) -> List[Dict[str, Any]]:
        """List object descriptors (``name``, ``queryable``, ...)."""
        pass

    @abstractmethod
    async def describe(self, object_name: str) -> Dict[str, Any]:
        """Describe one object, including its ``fields``."""
        pass

    @abstractmethod
    async def query(self, soql: str) -> QueryPage:
        """Run a query and return its first page."""
        pass

    @abstractmethod
    async def query_more(self, next_records_url: str) -> QueryPage:
        """Fetch the page behind ``next_records_url``."""
        pass

    @abstractmethod
    async def fetch_bytes(self, url: str) -> bytes:
        """Download binary content by relative or absolute URL."""
        pass

    def content_url(self, object_type: str, record_id: str) -> str:
        """Download URL for the binary body of a content record."""
        body_field = CONTENT_BODY_FIELDS.get(object_type, "Body")
        return f"/services/data/v{self.api_version}/sobjects/{object_type}/{record_id}/{body_field}"


class RestDataClient(BaseDataClient):
    """``BaseDataClient`` over the REST API using an existing bearer token."""

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = "58.0",
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.instance_url = instance_url.rstrip("/")
        self.api_version = api_version
        self._client = httpx.AsyncClient(
            base_url=self.instance_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=request_timeout,
            transport=transport
        )

    @property
    def _data_path(self) -> str:
        return f"/services/data/v{self.api_version}"

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise DataClientError(f"Request to {url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise DataClientError(f"Request to {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise DataClientAuthError(
                f"Authentication failed ({response.status_code}): {self._error_message(response)}",
                status_code=response.status_code
            )
        if response.status_code >= 400:
            raise DataClientError(
                f"HTTP {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code
            )
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract ``errorCode: message`` from a platform error body."""
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase

        if isinstance(body, list) and body and isinstance(body[0], dict):
            error = body[0]
            return f"{error.get('errorCode', 'UNKNOWN')}: {error.get('message', '')}"
        return str(body)

    @staticmethod
    def _to_page(body: Dict[str, Any]) -> QueryPage:
        return QueryPage(
            records=body.get("records", []),
            done=body.get("done", True),
            next_records_url=body.get("nextRecordsUrl"),
            total_size=body.get("totalSize", 0)
        )

    async def describe_global(self) -> List[Dict[str, Any]]:
        body = await self._get_json(f"{self._data_path}/sobjects")
        sobjects = [s for s in body.get("sobjects", []) if s.get("queryable")]
        logger.debug(f"Retrieved {len(sobjects)} queryable objects")
        return sobjects

    async def describe(self, object_name: str) -> Dict[str, Any]:
        return await self._get_json(f"{self._data_path}/sobjects/{object_name}/describe")

    async def query(self, soql: str) -> QueryPage:
        logger.debug(f"Executing query: {soql[:100]}")
        body = await self._get_json(f"{self._data_path}/query", params={"q": soql})
        return self._to_page(body)

    async def query_more(self, next_records_url: str) -> QueryPage:
        body = await self._get_json(next_records_url)
        return self._to_page(body)

    async def fetch_bytes(self, url: str) -> bytes:
        # httpx errors propagate so the fetcher can classify and retry them
        response = await self._client.get(url)
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RestDataClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
