"""
Abstract Storage Interface

DESIGN DECISION: The ledger sits behind an abstract interface.
That way:
1. The sheet can be replaced by a database without touching the sync
2. Tests and unconfigured setups run against a dict
3. The reconciliation never sees gspread

The surface is small on purpose.
The sync only needs to read everything, then upsert and delete in bulk by id.
No transactional guarantee is assumed beyond sequential application.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from budcal.models.audit import AuditEvent
from budcal.models.transaction import Transaction


class TransactionStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Transactions are keyed by `id`; `put` is an upsert.
    """

    @abstractmethod
    async def get_all(self) -> list[Transaction]:
        """
        Return every stored transaction.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        """
        Retrieve a transaction by id.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def put(self, transaction: Transaction) -> str:
        """
        Insert or replace a transaction.

        Args:
            transaction: The transaction to store

        Returns:
            The transaction id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, transaction_id: str) -> bool:
        """
        Delete a transaction by id.

        Returns:
            True if something was deleted
        """
        pass

    @abstractmethod
    async def put_many(self, transactions: list[Transaction]) -> int:
        """
        Insert or replace several transactions in one pass.

        Backends with per-request quotas must not issue one request per row.

        Returns:
            Number of transactions written

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_many(self, transaction_ids: list[str]) -> int:
        """
        Delete several transactions by id in one pass.

        Unknown ids are ignored.

        Returns:
            Number of transactions deleted
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every transaction."""
        pass


class AuditStorageInterface(ABC):
    """
    Where audit events are persisted.

    Append-only: events are never edited or removed.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Persist one audit event.

        Returns:
            False if the backend refused the write
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one sync run).

        Returns:
            Events of that run, oldest first
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Latest events, up to `limit`.

        Returns:
            Events, newest first
        """
        pass


class StorageError(Exception):
    """A storage backend failed to read or write."""
    pass


class NotFoundError(StorageError):
    """No record with the requested id."""
    pass


class ConnectionError(StorageError):
    """The storage backend is unreachable or misconfigured."""
    pass
