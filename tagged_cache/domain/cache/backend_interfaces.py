"""
Cache Backend Interfaces

Contract a host application programs against. Backends implementing
``TaggableCacheBackend`` can be swapped without touching callers.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional


class CacheBackend(ABC):
    """Basic cache backend contract."""

    @abstractmethod
    def set(
        self,
        identifier: str,
        payload: bytes,
        tags: Iterable[str] = (),
        lifetime: Optional[int] = None,
    ) -> None:
        """Store a payload, replacing any existing entry with that identifier."""
        pass

    @abstractmethod
    def get(self, identifier: str) -> Optional[bytes]:
        """Return the payload, or ``None`` if absent or expired."""
        pass

    @abstractmethod
    def has(self, identifier: str) -> bool:
        """Check whether a live entry exists."""
        pass

    @abstractmethod
    def remove(self, identifier: str) -> bool:
        """Remove an entry, ``True`` if one existed."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Remove every entry of this cache."""
        pass

    @abstractmethod
    def collect_garbage(self) -> None:
        """Remove expired entries."""
        pass


class TaggableCacheBackend(CacheBackend):
    """Cache backend supporting tag based lookup and invalidation."""

    @abstractmethod
    def find_identifiers_by_tag(self, tag: str) -> List[str]:
        """Identifiers of all entries carrying ``tag``."""
        pass

    @abstractmethod
    def flush_by_tag(self, tag: str) -> None:
        """Remove every entry carrying ``tag``."""
        pass
