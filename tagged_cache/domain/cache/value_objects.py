"""
Cache Value Objects

Immutable value objects for the tagged cache domain.
Identifiers, tags, lifetimes and secondary index entries are validated
on construction so invalid input never reaches a store gateway.
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from typing import Union

from .exceptions import InvalidArgumentError


class IndexType(str, Enum):
    """Secondary index value types understood by the store."""

    INTEGER = "int"
    BINARY = "bin"


IndexValue = Union[int, str]


@dataclass(frozen=True)
class IndexEntry:
    """
    A single secondary index entry attached to a stored record.

    ``field`` is the store level index name including its type suffix,
    for example ``tag_bin`` or ``expiration_int``.
    """

    field: str
    value: IndexValue

    @property
    def is_integer(self) -> bool:
        """Check if this entry belongs to an integer index."""
        return self.field.endswith("_" + IndexType.INTEGER.value)

    def __str__(self) -> str:
        return f"{self.field}={self.value}"


@dataclass(frozen=True)
class IndexDefinition:
    """Named secondary index with its value type."""

    name: str
    index_type: IndexType

    @property
    def field(self) -> str:
        """Store level index name, e.g. ``tag_bin``."""
        return f"{self.name}_{self.index_type.value}"

    def entry(self, value: IndexValue) -> IndexEntry:
        """Create an index entry for this index."""
        if self.index_type == IndexType.INTEGER:
            if isinstance(value, bool) or not isinstance(value, Integral):
                raise ValueError(f"Index {self.field} only accepts integers")
            return IndexEntry(self.field, int(value))
        return IndexEntry(self.field, str(value))


@dataclass(frozen=True)
class CacheIdentifier:
    """
    Cache entry identifier value object.

    Any non-empty string is accepted; the identifier is opaque to the cache.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidArgumentError("identifier", self.value)
        if not self.value:
            raise InvalidArgumentError(
                "identifier", self.value, reason="Cache identifier cannot be empty"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CacheTag:
    """
    Cache tag value object for invalidation groups.

    Tags are binary safe: commas, whitespace and non-ASCII characters are
    allowed since the index policy encodes them before storage.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidArgumentError("tag", self.value)
        if not self.value:
            raise InvalidArgumentError(
                "tag", self.value, reason="Cache tag cannot be empty"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Lifetime:
    """
    Entry lifetime in seconds.

    ``0`` means unlimited: the entry gets no expiration index at all.
    """

    seconds: int

    def __post_init__(self) -> None:
        if isinstance(self.seconds, bool) or not isinstance(self.seconds, Integral):
            raise InvalidArgumentError(
                "lifetime",
                self.seconds,
                reason=(
                    f'The specified lifetime is of type "{type(self.seconds).__name__}" '
                    "but an integer is expected."
                ),
            )
        if self.seconds < 0:
            raise InvalidArgumentError(
                "lifetime", self.seconds, reason="Lifetime cannot be negative"
            )

    @property
    def is_unlimited(self) -> bool:
        return self.seconds == 0

    def expires_at(self, now: float) -> int:
        """Absolute expiration timestamp for an entry written at ``now``."""
        return int(now) + int(self.seconds)

    def __str__(self) -> str:
        return "unlimited" if self.is_unlimited else f"{self.seconds}s"
