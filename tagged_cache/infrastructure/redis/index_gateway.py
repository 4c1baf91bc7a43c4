"""
Redis Store Gateway

Emulates a secondary-index key/value store on top of Redis:

- ``{ns}:{bucket}:obj:{key}`` hash holding payload and index list
- ``{ns}:{bucket}:idx:{field}:{value}`` set of keys, for exact matches
- ``{ns}:{bucket}:rng:{field}`` sorted set scored by integer value, for ranges

Writes and deletes read the previous index list inside a WATCH/MULTI
transaction so old memberships are removed together with the record.
"""

import json
from typing import Callable, Iterable, List, Optional, TypeVar

import structlog
from redis import Redis
from redis.client import Pipeline
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    RedisError,
)

from ...domain.cache.entities import StoreRecord
from ...domain.cache.exceptions import StoreOperationError, StoreUnavailableError
from ...domain.cache.repository_interfaces import StoreGateway
from ...domain.cache.value_objects import IndexEntry, IndexValue
from ..circuit_breaker import CircuitBreaker, CircuitBreakerConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RedisIndexGateway(StoreGateway):
    """Redis implementation of the store gateway."""

    PAYLOAD_FIELD = "payload"
    INDEXES_FIELD = "indexes"

    def __init__(
        self,
        client: Redis,
        namespace: str = "tagged_cache",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.client = client
        self.namespace = namespace
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            CircuitBreakerConfig(
                failure_exceptions=(RedisConnectionError, RedisTimeoutError)
            ),
            name=f"redis:{namespace}",
        )

    @classmethod
    def from_settings(
        cls,
        hostname: str,
        port: int,
        db: int = 0,
        timeout: float = 5.0,
        namespace: str = "tagged_cache",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> "RedisIndexGateway":
        client = Redis(
            host=hostname,
            port=port,
            db=db,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
            decode_responses=False,
        )
        return cls(client, namespace=namespace, circuit_breaker=circuit_breaker)

    # Key layout

    def _object_key(self, bucket: str, key: str) -> str:
        return f"{self.namespace}:{bucket}:obj:{key}"

    def _exact_key(self, bucket: str, index_field: str, value: IndexValue) -> str:
        return f"{self.namespace}:{bucket}:idx:{index_field}:{value}"

    def _range_key(self, bucket: str, index_field: str) -> str:
        return f"{self.namespace}:{bucket}:rng:{index_field}"

    @staticmethod
    def _dump_indexes(indexes: Iterable[IndexEntry]) -> str:
        return json.dumps(
            sorted([entry.field, entry.value] for entry in indexes), separators=(",", ":")
        )

    @staticmethod
    def _load_indexes(raw: Optional[bytes]) -> frozenset:
        if not raw:
            return frozenset()
        try:
            return frozenset(
                IndexEntry(field, value) for field, value in json.loads(raw)
            )
        except (TypeError, ValueError) as e:
            raise StoreOperationError(
                message=f"Stored index list is malformed: {e}",
                operation="load_indexes",
                body=raw.decode("utf-8", "replace") if isinstance(raw, bytes) else str(raw),
            ) from e

    def _execute(self, operation: str, func: Callable[..., T], *args, **kwargs) -> T:
        try:
            return self._circuit_breaker.call(func, *args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis request failed", operation=operation, error=str(e))
            raise StoreUnavailableError(
                message=f"Redis {operation} failed: {e}",
                operation=operation,
                original_error=e,
            ) from e
        except RedisError as e:
            logger.error("Redis operation error", operation=operation, error=str(e))
            raise StoreOperationError(
                message=f"Redis {operation} failed: {e}", operation=operation
            ) from e

    # Index maintenance inside a transaction

    def _unlink_indexes(
        self, pipe: Pipeline, bucket: str, key: str, indexes: Iterable[IndexEntry]
    ) -> None:
        for entry in indexes:
            pipe.srem(self._exact_key(bucket, entry.field, entry.value), key)
            if entry.is_integer:
                pipe.zrem(self._range_key(bucket, entry.field), key)

    def _link_indexes(
        self, pipe: Pipeline, bucket: str, key: str, indexes: Iterable[IndexEntry]
    ) -> None:
        scores = {}
        for entry in indexes:
            pipe.sadd(self._exact_key(bucket, entry.field, entry.value), key)
            if entry.is_integer:
                # One score per key and field; keep the lowest value
                current = scores.get(entry.field)
                value = int(entry.value)
                scores[entry.field] = value if current is None else min(current, value)
        for index_field, score in scores.items():
            pipe.zadd(self._range_key(bucket, index_field), {key: score})

    # Record access

    def get_record(self, bucket: str, key: str) -> Optional[StoreRecord]:
        data = self._execute("get_record", self.client.hgetall, self._object_key(bucket, key))
        if not data:
            return None
        return StoreRecord(
            key=key,
            payload=data.get(self.PAYLOAD_FIELD.encode(), b""),
            indexes=self._load_indexes(data.get(self.INDEXES_FIELD.encode())),
        )

    def put_record(
        self,
        bucket: str,
        key: str,
        payload: bytes,
        indexes: Iterable[IndexEntry],
        revision: Optional[str] = None,
    ) -> None:
        object_key = self._object_key(bucket, key)
        indexes = frozenset(indexes)

        def replace(pipe: Pipeline) -> None:
            previous = self._load_indexes(pipe.hget(object_key, self.INDEXES_FIELD))
            pipe.multi()
            self._unlink_indexes(pipe, bucket, key, previous)
            pipe.delete(object_key)
            pipe.hset(
                object_key,
                mapping={
                    self.PAYLOAD_FIELD: payload,
                    self.INDEXES_FIELD: self._dump_indexes(indexes),
                },
            )
            self._link_indexes(pipe, bucket, key, indexes)

        self._execute("put_record", self.client.transaction, replace, object_key)

    def delete_record(self, bucket: str, key: str) -> None:
        object_key = self._object_key(bucket, key)

        def remove(pipe: Pipeline) -> None:
            previous = self._load_indexes(pipe.hget(object_key, self.INDEXES_FIELD))
            pipe.multi()
            self._unlink_indexes(pipe, bucket, key, previous)
            pipe.delete(object_key)

        self._execute("delete_record", self.client.transaction, remove, object_key)

    # Secondary index queries

    @staticmethod
    def _decode_keys(members: Iterable[bytes]) -> List[str]:
        return [
            member.decode("utf-8") if isinstance(member, bytes) else member
            for member in members
        ]

    def query_index_exact(
        self, bucket: str, index_field: str, value: IndexValue
    ) -> List[str]:
        members = self._execute(
            "query_index",
            self.client.smembers,
            self._exact_key(bucket, index_field, value),
        )
        return self._decode_keys(members)

    def query_index_range(
        self, bucket: str, index_field: str, low: int, high: int
    ) -> List[str]:
        if high < low:
            return []
        members = self._execute(
            "query_index",
            self.client.zrangebyscore,
            self._range_key(bucket, index_field),
            low,
            high,
        )
        return self._decode_keys(members)

    def ping(self) -> bool:
        try:
            return bool(self._execute("ping", self.client.ping))
        except StoreUnavailableError:
            return False

    def close(self) -> None:
        self.client.close()
