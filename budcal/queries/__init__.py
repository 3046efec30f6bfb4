"""Ledger query package."""

from budcal.queries.summary import LedgerQueries

__all__ = ["LedgerQueries"]
