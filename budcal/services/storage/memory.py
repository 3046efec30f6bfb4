"""
In-Memory Storage

Process-local implementations of the storage interfaces. Used in tests
and as the fallback when Google Sheets is not configured.
Insertion order is preserved, like rows appended to a sheet.
"""

from typing import Optional
from uuid import UUID

from budcal.models.audit import AuditEvent
from budcal.models.transaction import Transaction
from budcal.services.storage.interface import (
    AuditStorageInterface,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Dict-backed ledger keyed by transaction id."""

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._rows: dict[str, Transaction] = {}
        for transaction in transactions or []:
            self._rows[transaction.id] = transaction.model_copy()

    async def get_all(self) -> list[Transaction]:
        return [t.model_copy() for t in self._rows.values()]

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        transaction = self._rows.get(transaction_id)
        return transaction.model_copy() if transaction else None

    async def put(self, transaction: Transaction) -> str:
        self._rows[transaction.id] = transaction.model_copy()
        return transaction.id

    async def delete(self, transaction_id: str) -> bool:
        return self._rows.pop(transaction_id, None) is not None

    async def put_many(self, transactions: list[Transaction]) -> int:
        for transaction in transactions:
            await self.put(transaction)
        return len(transactions)

    async def delete_many(self, transaction_ids: list[str]) -> int:
        return sum([await self.delete(transaction_id) for transaction_id in transaction_ids])

    async def clear(self) -> None:
        self._rows.clear()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
