"""
Backend Interfaces

💾 External Collaborator Contracts:
The store never talks to a database or bucket directly. It consumes these two
contracts, which a remote tabular service and an object storage service (or
the in-memory stand-ins in ``memory.py``) implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

Row = Dict[str, Any]
Match = Mapping[str, Any]


@dataclass(frozen=True)
class SelectOptions:
    """Paging and ordering for match queries"""
    offset: int = 0
    limit: Optional[int] = None
    order_by: Optional[str] = None
    order_by_desc: bool = False

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")

    def with_limit(self, limit: int) -> 'SelectOptions':
        """Copy of these options with a different limit"""
        return SelectOptions(
            offset=self.offset,
            limit=limit,
            order_by=self.order_by,
            order_by_desc=self.order_by_desc
        )


@dataclass(frozen=True)
class SignedUrl:
    """A time-limited link to a private stored object"""
    url: str
    expires_at: datetime


class PersistenceBackend(ABC):
    """
    Contract of the remote tabular data service.

    Every method is a plain request/response call. Implementations raise on
    transport failure; the store wraps such failures in
    ``BackendUnavailableError``.
    """

    @abstractmethod
    async def get_by_id(self, table: str, record_id: str) -> Optional[Row]:
        """
        Load one row.

        Returns:
            The full row, or None if no row has this id
        """
        pass

    @abstractmethod
    async def query(self, table: str, match: Match, options: SelectOptions) -> List[Row]:
        """
        Load every row whose fields equal the given values.

        A list, tuple or set value matches any of its members.
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """
        Insert a row, assigning ``id`` and ``created_at`` when absent.

        Returns:
            The materialised row as stored
        """
        pass

    @abstractmethod
    async def update(self, table: str, record_id: str, partial: Row) -> Optional[Row]:
        """
        Merge ``partial`` into an existing row.

        Returns:
            The full updated row, or None if no row has this id
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> Optional[Row]:
        """
        Delete a row.

        Returns:
            The row as it was before deletion, or None if it did not exist
        """
        pass


class ObjectStorageBackend(ABC):
    """Contract of the object storage service"""

    @abstractmethod
    async def resolve_signed_url(self, path: str) -> SignedUrl:
        """
        Resolve a storage path to a signed URL.

        Raises:
            ObjectNotFoundError: if nothing is stored at ``path``
        """
        pass


__all__ = [
    "Row", "Match", "SelectOptions", "SignedUrl",
    "PersistenceBackend", "ObjectStorageBackend"
]
