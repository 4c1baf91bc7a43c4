"""
Cache Entry Codec

Maps cache writes onto store records plus their secondary index set, and
store records back onto payloads and cache entries. Payloads are stored
verbatim with no framing.
"""

from dataclasses import dataclass
from typing import Iterable, FrozenSet, Optional, Union

from .entities import CacheEntry, StoreRecord
from .exceptions import InvalidDataError
from .index_policy import IndexPolicy
from .value_objects import CacheIdentifier, CacheTag, IndexEntry, Lifetime


@dataclass(frozen=True)
class EncodedEntry:
    """Record payload and index set ready for ``put_record``."""

    key: str
    payload: bytes
    indexes: FrozenSet[IndexEntry]
    tags: FrozenSet[str] = frozenset()
    expires_at: Optional[int] = None


class EntryCodec:
    """Encode cache entries into store records and decode them back."""

    def __init__(self, policy: Optional[IndexPolicy] = None):
        self.policy = policy or IndexPolicy()

    def encode(
        self,
        identifier: str,
        payload: bytes,
        tags: Iterable[str] = (),
        lifetime: Optional[Union[int, Lifetime]] = None,
        now: float = 0,
    ) -> EncodedEntry:
        """
        Encode one cache write.

        Args:
            identifier: Cache entry identifier
            payload: Raw bytes to store
            tags: Tags to associate with the entry
            lifetime: Seconds until expiration; ``None`` or ``0`` writes no
                expiration index
            now: Current unix time used as the lifetime base

        Raises:
            InvalidArgumentError: identifier, tag or lifetime is invalid
            InvalidDataError: payload is not a byte string
        """
        key = CacheIdentifier(identifier).value
        if not isinstance(payload, bytes):
            raise InvalidDataError(payload)

        tag_values = self.validate_tags(tags)

        expires_at = None
        if lifetime is not None:
            if not isinstance(lifetime, Lifetime):
                lifetime = Lifetime(lifetime)
            if not lifetime.is_unlimited:
                expires_at = lifetime.expires_at(now)

        return EncodedEntry(
            key=key,
            payload=payload,
            indexes=self.policy.build(tag_values, expires_at),
            tags=tag_values,
            expires_at=expires_at,
        )

    @staticmethod
    def validate_tags(tags: Iterable[str]) -> FrozenSet[str]:
        if isinstance(tags, (str, bytes)):
            # A bare string would otherwise be split into characters
            tags = (tags,)
        return frozenset(CacheTag(tag).value for tag in tags)

    def decode(self, record: StoreRecord) -> bytes:
        return record.payload

    def decode_entry(self, record: StoreRecord) -> CacheEntry:
        """Rebuild the logical entry from a stored record and its indexes."""
        return CacheEntry(
            identifier=record.key,
            payload=self.decode(record),
            tags=self.policy.tags_of(record.indexes),
            expires_at=self.policy.expiration_of(record.indexes),
        )
