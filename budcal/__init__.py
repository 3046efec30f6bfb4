"""
BudCal - Source Package

A calendar-driven personal budget ledger. Income and expense
transactions are either entered by hand or derived from the events of
the user's calendars.

DESIGN PRINCIPLES:
1. The calendar is the source, the user is the authority
2. Manual edits are never overwritten by a sync
3. No rule found is not an error, it is simply not a transaction
4. Every sync must be auditable
5. Calendar source and storage are swappable
"""

__version__ = "1.0.0"
__author__ = "BudCal Team"
