"""
Riak HTTP Store Gateway

Store gateway speaking the Riak HTTP API. Records live at
``/buckets/{bucket}/keys/{key}``; secondary indexes travel as
``x-riak-index-*`` headers and are queried through
``/buckets/{bucket}/index/...``. Secondary index queries need a storage
backend with 2i support (LevelDB or memory).
"""

from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog

from ...domain.cache.entities import StoreRecord
from ...domain.cache.exceptions import (
    IndexesNotSupportedError,
    StoreOperationError,
    StoreUnavailableError,
)
from ...domain.cache.repository_interfaces import StoreGateway
from ...domain.cache.value_objects import IndexEntry, IndexValue
from ..circuit_breaker import CircuitBreaker, CircuitBreakerConfig

logger = structlog.get_logger(__name__)


class RiakHttpGateway(StoreGateway):
    """
    Riak HTTP implementation of the store gateway.

    Vector clocks read with a record are handed back on write as its
    revision, so replacing an entry does not create siblings.
    """

    CONTENT_TYPE = "application/x-tagged-cache"
    INDEX_HEADER_PREFIX = "x-riak-index-"
    VCLOCK_HEADER = "X-Riak-Vclock"
    CLIENT_ID_HEADER = "X-Riak-ClientId"

    def __init__(
        self,
        hostname: str = "127.0.0.1",
        port: int = 8098,
        timeout: float = 5.0,
        page_size: int = 1000,
        client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client_id: Optional[str] = None,
    ):
        self.base_url = f"http://{hostname}:{port}"
        self.page_size = page_size
        self.client_id = client_id
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            CircuitBreakerConfig(failure_exceptions=(httpx.TransportError,)),
            name=f"riak:{hostname}:{port}",
        )

    # URL helpers

    @staticmethod
    def _key_url(bucket: str, key: str) -> str:
        return f"/buckets/{quote(bucket, safe='')}/keys/{quote(key, safe='')}"

    @staticmethod
    def _index_url(bucket: str, index_field: str, *values) -> str:
        path = "/".join(quote(str(value), safe="") for value in values)
        return f"/buckets/{quote(bucket, safe='')}/index/{index_field}/{path}"

    def _request(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        if self.client_id:
            kwargs["headers"] = [
                *kwargs.get("headers", []),
                (self.CLIENT_ID_HEADER, self.client_id),
            ]
        try:
            return self._circuit_breaker.call(self._client.request, method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning(
                "Riak request failed",
                operation=operation,
                url=url,
                error=str(e),
            )
            raise StoreUnavailableError(
                message=f"Riak {operation} failed: {e}",
                operation=operation,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "Riak response could not be processed",
                operation=operation,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreOperationError(
                message=f"Riak {operation} failed: {e}", operation=operation
            ) from e

    def _raise_for_status(
        self, operation: str, response: httpx.Response, expected: Tuple[int, ...]
    ) -> None:
        if response.status_code in expected:
            return
        if response.status_code == 503:
            raise StoreUnavailableError(
                message=f"Riak {operation} answered 503 Service Unavailable",
                operation=operation,
            )
        raise StoreOperationError(
            message=f"Unexpected Riak response {response.status_code} for {operation}",
            operation=operation,
            status_code=response.status_code,
            body=response.text,
        )

    # Record access

    def _parse_indexes(self, headers: httpx.Headers) -> frozenset:
        entries = set()
        for name, raw in headers.multi_items():
            name = name.lower()
            if not name.startswith(self.INDEX_HEADER_PREFIX):
                continue
            index_field = name[len(self.INDEX_HEADER_PREFIX):]
            for value in raw.split(","):
                value = value.strip()
                if not value:
                    continue
                entry = IndexEntry(index_field, value)
                if entry.is_integer:
                    try:
                        entry = IndexEntry(index_field, int(value))
                    except ValueError as e:
                        raise StoreOperationError(
                            message=f"Riak returned non-integer value {value!r} "
                            f"for index {index_field}",
                            operation="get_record",
                            status_code=200,
                        ) from e
                entries.add(entry)
        return frozenset(entries)

    def _sibling_vtags(self, response: httpx.Response) -> List[str]:
        lines = [line.strip() for line in response.text.splitlines()]
        return [line for line in lines if line and line != "Siblings:"]

    def get_record(self, bucket: str, key: str) -> Optional[StoreRecord]:
        url = self._key_url(bucket, key)
        response = self._request("get_record", "GET", url)
        if response.status_code == 404:
            return None

        vclock = response.headers.get(self.VCLOCK_HEADER)
        if response.status_code == 300:
            # Siblings: read one of them; writing back with the shared vclock
            # collapses them into a single value again.
            vtags = self._sibling_vtags(response)
            logger.info(
                "Riak returned siblings, resolving to first sibling",
                bucket=bucket,
                key=key,
                siblings=len(vtags),
            )
            if not vtags:
                raise StoreOperationError(
                    "Riak reported siblings without vtags",
                    operation="get_record",
                    status_code=300,
                    body=response.text,
                )
            response = self._request(
                "get_record", "GET", url, params={"vtag": vtags[0]}
            )
            if response.status_code == 404:
                return None

        self._raise_for_status("get_record", response, (200,))
        return StoreRecord(
            key=key,
            payload=response.content,
            indexes=self._parse_indexes(response.headers),
            revision=vclock or response.headers.get(self.VCLOCK_HEADER),
        )

    def put_record(
        self,
        bucket: str,
        key: str,
        payload: bytes,
        indexes: Iterable[IndexEntry],
        revision: Optional[str] = None,
    ) -> None:
        headers = [("Content-Type", self.CONTENT_TYPE)]
        headers.extend(
            (self.INDEX_HEADER_PREFIX + entry.field, str(entry.value))
            for entry in sorted(indexes, key=lambda e: (e.field, str(e.value)))
        )
        if revision:
            headers.append((self.VCLOCK_HEADER, revision))

        response = self._request(
            "put_record", "PUT", self._key_url(bucket, key), content=payload, headers=headers
        )
        self._raise_for_status("put_record", response, (200, 201, 204))

    def delete_record(self, bucket: str, key: str) -> None:
        response = self._request("delete_record", "DELETE", self._key_url(bucket, key))
        self._raise_for_status("delete_record", response, (204, 404))

    # Secondary index queries

    def _query(self, bucket: str, index_field: str, url: str) -> List[str]:
        keys: List[str] = []
        params: Dict[str, str] = {"max_results": str(self.page_size)}
        while True:
            response = self._request("query_index", "GET", url, params=params)
            if "indexes_not_supported" in response.text and response.status_code >= 400:
                raise IndexesNotSupportedError(bucket, index_field)
            self._raise_for_status("query_index", response, (200,))

            try:
                body = response.json()
            except ValueError as e:
                raise StoreOperationError(
                    message="Riak index query answered with a non-JSON body",
                    operation="query_index",
                    status_code=response.status_code,
                    body=response.text,
                ) from e
            if not isinstance(body, dict):
                raise StoreOperationError(
                    message="Riak index query answered with an unexpected body",
                    operation="query_index",
                    status_code=response.status_code,
                    body=response.text,
                )
            keys.extend(body.get("keys", []))
            continuation = body.get("continuation")
            if not continuation:
                return keys
            params = {"max_results": str(self.page_size), "continuation": continuation}

    def query_index_exact(
        self, bucket: str, index_field: str, value: IndexValue
    ) -> List[str]:
        return self._query(bucket, index_field, self._index_url(bucket, index_field, value))

    def query_index_range(
        self, bucket: str, index_field: str, low: int, high: int
    ) -> List[str]:
        if high < low:
            return []
        return self._query(
            bucket, index_field, self._index_url(bucket, index_field, low, high)
        )

    def ping(self) -> bool:
        try:
            response = self._request("ping", "GET", "/ping")
        except StoreUnavailableError:
            return False
        return response.status_code == 200

    def close(self) -> None:
        self._client.close()
