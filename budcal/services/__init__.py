"""Services package."""

from budcal.services.calendar import (
    CalendarConnectionError,
    CalendarError,
    CalendarNotFoundError,
    CalendarSourceInterface,
    GoogleCalendarClient,
    GoogleCalendarSource,
)
from budcal.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Calendar services
    "CalendarConnectionError",
    "CalendarError",
    "CalendarNotFoundError",
    "CalendarSourceInterface",
    "GoogleCalendarClient",
    "GoogleCalendarSource",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
]
