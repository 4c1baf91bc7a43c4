"""
Tagged Expiring Cache Backend

Implements the taggable cache contract on top of a store gateway with
secondary indexes. Tags, a cache membership marker and the expiration
timestamp are written as indexes on every record, so tag lookups, flushes
and garbage collection are index queries instead of key scans.

The backend keeps no state between calls. Two races are accepted rather
than locked against, since the store offers no compare-and-swap or cross
key transactions:

- ``set`` reads then writes; concurrent writers to one identifier resolve
  at the store, last writer wins
- bulk deletions query then delete key by key; an entry written while a
  flush runs may or may not survive it
"""

import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, List, Optional

import structlog
from opentelemetry import trace

from ...domain.cache.backend_interfaces import TaggableCacheBackend
from ...domain.cache.entities import CacheEntry
from ...domain.cache.entry_codec import EntryCodec
from ...domain.cache.exceptions import BulkDeletionError, StoreException
from ...domain.cache.repository_interfaces import StoreGateway
from ...domain.cache.value_objects import CacheIdentifier, CacheTag, Lifetime
from ...monitoring.cache_metrics import CacheMetricsCollector

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class TaggedExpiringCacheBackend(TaggableCacheBackend):
    """
    Cache backend storing opaque byte payloads with tags and expiration.

    Args:
        gateway: Store gateway holding the records
        bucket_name: Logical partition of this cache inside the store
        default_lifetime: Lifetime used when ``set`` gets ``None``; 0 is unlimited
        codec: Entry codec, defaults to the standard index policy
        clock: Returns the current unix time in seconds
        metrics: Prometheus collector, a private one is created if omitted
    """

    def __init__(
        self,
        gateway: StoreGateway,
        bucket_name: str = "tagged_cache",
        default_lifetime: int = 0,
        codec: Optional[EntryCodec] = None,
        clock: Callable[[], float] = time.time,
        metrics: Optional[CacheMetricsCollector] = None,
    ):
        self.gateway = gateway
        self.bucket_name = bucket_name
        self.default_lifetime = Lifetime(default_lifetime)
        self.codec = codec or EntryCodec()
        self.policy = self.codec.policy
        self.clock = clock
        self.metrics = metrics or CacheMetricsCollector()

    @contextmanager
    def _operation(self, name: str, **attributes):
        with tracer.start_as_current_span(f"cache.{name}") as span:
            span.set_attribute("cache.bucket", self.bucket_name)
            for key, value in attributes.items():
                span.set_attribute(f"cache.{key}", value)
            with self.metrics.track(self.bucket_name, name):
                yield span

    # Point operations

    def set(
        self,
        identifier: str,
        payload: bytes,
        tags: Iterable[str] = (),
        lifetime: Optional[int] = None,
    ) -> None:
        """
        Save a payload in the cache.

        Args:
            identifier: Identifier for this specific cache entry
            payload: Bytes to store
            tags: Tags to associate with this cache entry
            lifetime: Lifetime in seconds. ``None`` applies the default
                lifetime, ``0`` means unlimited.

        Raises:
            InvalidArgumentError: identifier, tag or lifetime is invalid
            InvalidDataError: payload is not a byte string
        """
        now = self.clock()
        encoded = self.codec.encode(
            identifier,
            payload,
            tags,
            self.default_lifetime if lifetime is None else lifetime,
            now,
        )

        with self._operation("set", identifier=encoded.key) as span:
            # The previous version is read so the write replaces it instead of
            # forking a sibling; its index set is overwritten, never merged.
            existing = self.gateway.get_record(self.bucket_name, encoded.key)
            self.gateway.put_record(
                self.bucket_name,
                encoded.key,
                encoded.payload,
                encoded.indexes,
                revision=existing.revision if existing else None,
            )

            span.set_attribute("cache.replaced", existing is not None)
            self.metrics.record_write(self.bucket_name, replaced=existing is not None)
            logger.debug(
                "Cache entry stored",
                bucket=self.bucket_name,
                identifier=encoded.key,
                replaced=existing is not None,
                tags=sorted(encoded.tags),
                expires_at=encoded.expires_at,
                size_bytes=len(encoded.payload),
            )

    def _read_live(self, identifier: str, operation: str) -> Optional[CacheEntry]:
        """Point read with read-time expiration: expired entries are deleted."""
        key = CacheIdentifier(identifier).value
        record = self.gateway.get_record(self.bucket_name, key)
        if record is None:
            self.metrics.record_lookup(self.bucket_name, "miss")
            return None

        entry = self.codec.decode_entry(record)
        if entry.is_expired(self.clock()):
            self.gateway.delete_record(self.bucket_name, key)
            self.metrics.record_lookup(self.bucket_name, "expired")
            self.metrics.record_deletions(self.bucket_name, "expired")
            logger.debug(
                "Expired cache entry removed on read",
                bucket=self.bucket_name,
                identifier=key,
                operation=operation,
                expires_at=entry.expires_at,
            )
            return None

        self.metrics.record_lookup(self.bucket_name, "hit")
        return entry

    def get(self, identifier: str) -> Optional[bytes]:
        """
        Load a payload from the cache.

        Returns:
            The payload, or ``None`` if the entry is absent or expired

        Raises:
            InvalidArgumentError: identifier is not a non-empty string
        """
        CacheIdentifier(identifier)
        with self._operation("get", identifier=identifier) as span:
            entry = self._read_live(identifier, "get")
            span.set_attribute("cache.hit", entry is not None)
            return entry.payload if entry else None

    def has(self, identifier: str) -> bool:
        """
        Check if a live cache entry exists.

        Applies the same expiration check as ``get``, so both agree on
        whether an entry is there.
        """
        CacheIdentifier(identifier)
        with self._operation("has", identifier=identifier):
            return self._read_live(identifier, "has") is not None

    def remove(self, identifier: str) -> bool:
        """
        Remove the cache entry with the given identifier.

        Returns:
            ``True`` if an entry was removed, ``False`` if none was found
        """
        key = CacheIdentifier(identifier).value
        with self._operation("remove", identifier=key):
            if self.gateway.get_record(self.bucket_name, key) is None:
                return False
            self.gateway.delete_record(self.bucket_name, key)
            self.metrics.record_deletions(self.bucket_name, "remove")
            return True

    # Index based operations

    def find_identifiers_by_tag(self, tag: str) -> List[str]:
        """
        Find all cache entry identifiers tagged with ``tag``.

        Returns:
            Matching identifiers in no particular order, empty if none match
        """
        tag = CacheTag(tag).value
        with self._operation("find_identifiers_by_tag", tag=tag) as span:
            keys = self.gateway.query_index_exact(
                self.bucket_name, self.policy.tag.field, self.policy.encode_tag(tag)
            )
            identifiers = list(dict.fromkeys(keys))
            span.set_attribute("cache.matches", len(identifiers))
            return identifiers

    def _delete_all(self, operation: str, keys: Iterable[str]) -> int:
        """
        Delete every key, continuing past individual failures.

        Raises:
            BulkDeletionError: after all keys were attempted, if any failed
        """
        keys = list(dict.fromkeys(keys))
        failed: Dict[str, str] = {}

        for key in keys:
            try:
                self.gateway.delete_record(self.bucket_name, key)
            except StoreException as e:
                failed[key] = e.message
                logger.warning(
                    "Failed to delete cache entry during bulk operation",
                    bucket=self.bucket_name,
                    operation=operation,
                    identifier=key,
                    error=e.message,
                    error_code=e.error_code,
                )

        deleted = len(keys) - len(failed)
        self.metrics.record_deletions(self.bucket_name, operation, deleted)
        self.metrics.record_bulk_failures(self.bucket_name, operation, len(failed))
        logger.info(
            "Bulk cache deletion finished",
            bucket=self.bucket_name,
            operation=operation,
            matched=len(keys),
            deleted=deleted,
            failed=len(failed),
        )

        if failed:
            raise BulkDeletionError(operation, failed, attempted=len(keys))
        return deleted

    def flush(self) -> None:
        """Remove all cache entries of this cache."""
        with self._operation("flush") as span:
            keys = self.gateway.query_index_exact(
                self.bucket_name,
                self.policy.cache_marker.field,
                self.policy.CACHE_MARKER_VALUE,
            )
            span.set_attribute("cache.matches", len(keys))
            self._delete_all("flush", keys)

    def flush_by_tag(self, tag: str) -> None:
        """Remove all cache entries tagged with ``tag``."""
        tag = CacheTag(tag).value
        with self._operation("flush_by_tag", tag=tag) as span:
            keys = self.gateway.query_index_exact(
                self.bucket_name, self.policy.tag.field, self.policy.encode_tag(tag)
            )
            span.set_attribute("cache.matches", len(keys))
            self._delete_all("flush_by_tag", keys)

    def flush_by_tags(self, tags: Iterable[str]) -> None:
        """
        Remove all cache entries carrying any of ``tags``.

        Every tag is validated before the first store call. Deletion
        failures across all tags are reported together.
        """
        tag_values = sorted(self.codec.validate_tags(tags))
        with self._operation("flush_by_tags", tags=len(tag_values)):
            keys: List[str] = []
            for tag in tag_values:
                keys.extend(
                    self.gateway.query_index_exact(
                        self.bucket_name,
                        self.policy.tag.field,
                        self.policy.encode_tag(tag),
                    )
                )
            self._delete_all("flush_by_tags", keys)

    def collect_garbage(self) -> None:
        """
        Delete entries whose expiration lies in the past.

        Best effort and safe to run repeatedly or never, since ``get`` and
        ``has`` expire entries on read as well.
        """
        low, high = self.policy.expired_range(self.clock())
        with self._operation("collect_garbage") as span:
            keys = self.gateway.query_index_range(
                self.bucket_name, self.policy.expiration.field, low, high
            )
            span.set_attribute("cache.matches", len(keys))
            self._delete_all("collect_garbage", keys)

    def health_check(self) -> Dict[str, object]:
        """Report store reachability for this cache."""
        reachable = self.gateway.ping()
        return {
            "status": "healthy" if reachable else "unhealthy",
            "bucket": self.bucket_name,
            "store_reachable": reachable,
            "gateway": type(self.gateway).__name__,
        }

    def close(self) -> None:
        self.gateway.close()
