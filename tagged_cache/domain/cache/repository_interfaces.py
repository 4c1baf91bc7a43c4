"""
Store Gateway Interface

Abstract contract for the key/value store holding cache records.
Concrete gateways translate these calls to a store's native record and
secondary index primitives.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .entities import StoreRecord
from .value_objects import IndexEntry, IndexValue


class StoreGateway(ABC):
    """
    Contract for record and secondary index access in one store.

    Implementations raise ``StoreUnavailableError`` for connectivity
    failures and ``StoreOperationError`` for unexpected store responses.
    """

    @abstractmethod
    def get_record(self, bucket: str, key: str) -> Optional[StoreRecord]:
        """Read a record with its indexes, ``None`` if absent."""
        pass

    @abstractmethod
    def put_record(
        self,
        bucket: str,
        key: str,
        payload: bytes,
        indexes: Iterable[IndexEntry],
        revision: Optional[str] = None,
    ) -> None:
        """Write a record, fully replacing its payload and index set."""
        pass

    @abstractmethod
    def delete_record(self, bucket: str, key: str) -> None:
        """Delete a record. Deleting an absent key is not an error."""
        pass

    @abstractmethod
    def query_index_exact(
        self, bucket: str, index_field: str, value: IndexValue
    ) -> List[str]:
        """Keys of all records carrying ``value`` in ``index_field``."""
        pass

    @abstractmethod
    def query_index_range(
        self, bucket: str, index_field: str, low: int, high: int
    ) -> List[str]:
        """Keys of all records with an integer index value in ``[low, high]``."""
        pass

    def ping(self) -> bool:
        """Check store connectivity."""
        return True

    def close(self) -> None:
        """Release client resources."""
        pass
