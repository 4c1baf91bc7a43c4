"""
Cache Domain Entities

Core entities for the tagged cache: the logical cache entry and the raw
record a store gateway persists for it.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from .value_objects import IndexEntry


@dataclass(frozen=True)
class StoreRecord:
    """
    Record as persisted by a store gateway.

    ``revision`` is an opaque, store specific token (a Riak vector clock for
    instance) that lets a later write replace this exact version instead of
    creating a sibling. Gateways without versioning leave it ``None``.
    """

    key: str
    payload: bytes
    indexes: FrozenSet[IndexEntry] = field(default_factory=frozenset)
    revision: Optional[str] = None

    def index_values(self, index_field: str) -> list:
        """Return all values stored for one index field."""
        return [entry.value for entry in self.indexes if entry.field == index_field]


@dataclass(frozen=True)
class CacheEntry:
    """
    Logical cache entry.

    An entry is either live or absent; being past its expiration is a
    predicate evaluated against the clock, not a stored state.
    """

    identifier: str
    payload: bytes
    tags: FrozenSet[str] = field(default_factory=frozenset)
    expires_at: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry's expiration lies before ``now``."""
        return self.expires_at is not None and self.expires_at < now
