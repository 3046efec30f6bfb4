"""
Ledger Queries

DESIGN DECISION: Totals are computed deterministically from stored
transactions, never cached. The ledger is small (one household) and the
sync may have rewritten it at any time.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from budcal.models.transaction import (
    LedgerSummary,
    Transaction,
    TransactionKind,
)
from budcal.services.storage import TransactionStorageInterface


class LedgerQueries:
    """
    Read-only views over the ledger.

    GUARANTEES:
    - Only returns real data from storage
    - Income and expense are reported as positive totals
    """

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def list_transactions(
        self,
        kind: Optional[TransactionKind] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, newest first."""
        transactions = [
            t for t in await self._storage.get_all()
            if self._matches(t, kind, date_from, date_to)
        ]
        transactions.sort(key=lambda t: t.occurred_at, reverse=True)
        return transactions

    async def summarize(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> LedgerSummary:
        """
        Totals for a date range (inclusive on both ends).

        Per-source totals group by calendar name; hand-entered
        transactions are grouped under "Manuale".
        """
        transactions = await self.list_transactions(
            date_from=date_from,
            date_to=date_to,
        )

        summary = LedgerSummary(transaction_count=len(transactions))
        for t in transactions:
            if t.kind == TransactionKind.INCOME:
                summary.income += t.amount
                groups = summary.income_by_source
            else:
                summary.expense += t.amount
                groups = summary.expense_by_source
            groups[t.source_label] = groups.get(t.source_label, Decimal("0")) + t.amount

        return summary

    @staticmethod
    def _matches(
        transaction: Transaction,
        kind: Optional[TransactionKind],
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> bool:
        if kind and transaction.kind != kind:
            return False
        day = transaction.occurred_on
        if date_from and day < date_from:
            return False
        if date_to and day > date_to:
            return False
        return True
