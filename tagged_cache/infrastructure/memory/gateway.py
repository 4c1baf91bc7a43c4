"""
In-memory store gateway.

Process-local implementation of the store gateway contract, with
secondary index queries answered by scanning the bucket. Intended for
tests and local development, not for shared caches.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ...domain.cache.entities import StoreRecord
from ...domain.cache.repository_interfaces import StoreGateway
from ...domain.cache.value_objects import IndexEntry, IndexValue


class InMemoryStoreGateway(StoreGateway):
    """Dictionary backed store gateway."""

    def __init__(self):
        self._buckets: Dict[str, Dict[str, StoreRecord]] = {}
        self._revision = 0
        self._lock = threading.Lock()

    def get_record(self, bucket: str, key: str) -> Optional[StoreRecord]:
        with self._lock:
            return self._buckets.get(bucket, {}).get(key)

    def put_record(
        self,
        bucket: str,
        key: str,
        payload: bytes,
        indexes: Iterable[IndexEntry],
        revision: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._revision += 1
            self._buckets.setdefault(bucket, {})[key] = StoreRecord(
                key=key,
                payload=bytes(payload),
                indexes=frozenset(indexes),
                revision=str(self._revision),
            )

    def delete_record(self, bucket: str, key: str) -> None:
        with self._lock:
            self._buckets.get(bucket, {}).pop(key, None)

    def query_index_exact(
        self, bucket: str, index_field: str, value: IndexValue
    ) -> List[str]:
        wanted = IndexEntry(index_field, value)
        with self._lock:
            return [
                key
                for key, record in self._buckets.get(bucket, {}).items()
                if wanted in record.indexes
            ]

    def query_index_range(
        self, bucket: str, index_field: str, low: int, high: int
    ) -> List[str]:
        with self._lock:
            return [
                key
                for key, record in self._buckets.get(bucket, {}).items()
                if any(low <= int(v) <= high for v in record.index_values(index_field))
            ]

    def keys(self, bucket: str) -> List[str]:
        """All keys currently stored in ``bucket``."""
        with self._lock:
            return list(self._buckets.get(bucket, {}))
