"""
Cache Index Policy

Defines the secondary indexes attached to every cache record and how
their values are encoded:

- ``cache_int``: constant membership marker, lets flush find every entry
  of the cache without knowing identifiers or tags
- ``tag_bin``: one value per tag, percent-encoded
- ``expiration_int``: absolute unix timestamp, range-queried by garbage
  collection instead of relying on store side TTLs
"""

import math
from typing import Iterable, FrozenSet, Optional, Tuple
from urllib.parse import quote, unquote

from .value_objects import IndexDefinition, IndexEntry, IndexType


CACHE_MARKER_INDEX = IndexDefinition("cache", IndexType.INTEGER)
TAG_INDEX = IndexDefinition("tag", IndexType.BINARY)
EXPIRATION_INDEX = IndexDefinition("expiration", IndexType.INTEGER)


class IndexPolicy:
    """Index families and value encodings for cache records."""

    CACHE_MARKER_VALUE = 1
    EXPIRATION_RANGE_START = 0

    cache_marker = CACHE_MARKER_INDEX
    tag = TAG_INDEX
    expiration = EXPIRATION_INDEX

    # Tag values travel through HTTP headers and URL paths on some stores,
    # so they are stored percent-encoded with no safe characters.
    @staticmethod
    def encode_tag(tag: str) -> str:
        return quote(tag, safe="")

    @staticmethod
    def decode_tag(value: str) -> str:
        return unquote(value)

    def marker_entry(self) -> IndexEntry:
        return self.cache_marker.entry(self.CACHE_MARKER_VALUE)

    def tag_entry(self, tag: str) -> IndexEntry:
        return self.tag.entry(self.encode_tag(tag))

    def expiration_entry(self, expires_at: int) -> IndexEntry:
        return self.expiration.entry(expires_at)

    def build(
        self, tags: Iterable[str], expires_at: Optional[int] = None
    ) -> FrozenSet[IndexEntry]:
        """Build the complete index set for one record."""
        entries = {self.marker_entry()}
        entries.update(self.tag_entry(tag) for tag in tags)
        if expires_at is not None:
            entries.add(self.expiration_entry(expires_at))
        return frozenset(entries)

    def tags_of(self, indexes: Iterable[IndexEntry]) -> FrozenSet[str]:
        return frozenset(
            self.decode_tag(str(entry.value))
            for entry in indexes
            if entry.field == self.tag.field
        )

    def expiration_of(self, indexes: Iterable[IndexEntry]) -> Optional[int]:
        """Earliest expiration stored on a record, ``None`` if it never expires."""
        values = [
            int(entry.value) for entry in indexes if entry.field == self.expiration.field
        ]
        return min(values) if values else None

    def expired_range(self, now: float) -> Tuple[int, int]:
        """Inclusive integer bounds matching expirations in ``[0, now)``."""
        return self.EXPIRATION_RANGE_START, math.ceil(now) - 1
