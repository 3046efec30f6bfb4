"""
Data Models Package

This package contains all Pydantic models used in BudCal.
All data flowing through the system must conform to these schemas.
"""

from budcal.models.transaction import (
    BudgetRule,
    CalendarDefault,
    CalendarDiagnosis,
    Classification,
    LedgerSummary,
    RuleSource,
    SyncReport,
    TimeWindow,
    Transaction,
    TransactionKind,
    TransactionOrigin,
)
from budcal.models.calendar import (
    CalendarDetail,
    CalendarEvent,
    CalendarSummary,
    EventPage,
    EventStart,
)
from budcal.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BudgetRule",
    "CalendarDefault",
    "CalendarDiagnosis",
    "Classification",
    "LedgerSummary",
    "RuleSource",
    "SyncReport",
    "TimeWindow",
    "Transaction",
    "TransactionKind",
    "TransactionOrigin",
    # Calendar source models
    "CalendarDetail",
    "CalendarEvent",
    "CalendarSummary",
    "EventPage",
    "EventStart",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
