"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the ledger backend because:
1. Users can view and fix their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Same Google account that owns the calendars

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the sync upserts and deletes row by row, and never
  touches manual rows, so a crash mid-sync cannot lose user data)
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budcal.config import GoogleSheetsSettings, get_settings
from budcal.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budcal.models.transaction import (
    Transaction,
    TransactionKind,
    TransactionOrigin,
)
from budcal.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "date",
    "amount",
    "kind",
    "description",
    "origin",
    "external_event_id",
    "calendar_name",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._sheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        # Worksheet metadata counts against the read quota: fetch it once
        if title in self._sheets:
            return self._sheets[title]
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._sheets[title] = sheet
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=1000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of the ledger.

    One transaction per row, keyed by the `id` column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            transaction.id,
            transaction.date,
            str(transaction.amount),
            transaction.kind.value,
            transaction.description,
            transaction.origin.value,
            transaction.external_event_id or "",
            transaction.calendar_name or "",
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        safe_get = _safe_getter(row)
        values = dict(
            id=safe_get(0),
            date=safe_get(1),
            amount=Decimal(safe_get(2, "0")),
            kind=TransactionKind(safe_get(3)),
            description=safe_get(4) or None,
            origin=TransactionOrigin(safe_get(5, TransactionOrigin.MANUAL.value)),
            external_event_id=safe_get(6) or None,
            calendar_name=safe_get(7) or None,
        )
        if safe_get(8):
            values["created_at"] = datetime.fromisoformat(safe_get(8))
        if safe_get(9):
            values["updated_at"] = datetime.fromisoformat(safe_get(9))
        return Transaction(**values)

    def _row_index(self, sheet: gspread.Worksheet) -> dict[str, int]:
        """Map each id to its 1-based row number, reading the id column once."""
        index: dict[str, int] = {}
        # Row 1 is the header
        for idx, value in enumerate(sheet.col_values(1)[1:], start=2):
            if value:
                index.setdefault(value, idx)
        return index

    def _find_row_index(self, sheet: gspread.Worksheet, transaction_id: str) -> Optional[int]:
        return self._row_index(sheet).get(transaction_id)

    async def get_all(self) -> list[Transaction]:
        """Read every transaction (fails loudly on malformed rows)."""
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to read transactions: {e}") from e

        transactions = []
        for idx, row in enumerate(all_rows, start=2):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except Exception as e:
                raise StorageError(f"Malformed transaction in row {idx}: {e}") from e
        return transactions

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in await self.get_all():
            if transaction.id == transaction_id:
                return transaction
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def put(self, transaction: Transaction) -> str:
        """Update the row with this id, or append a new one."""
        try:
            sheet = self._client.get_transactions_sheet()
            row = self._transaction_to_row(transaction)
            idx = self._find_row_index(sheet, transaction.id)
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(range_name=f"A{idx}", values=[row])
            return transaction.id
        except Exception as e:
            raise StorageError(f"Failed to save transaction {transaction.id}: {e}") from e

    async def delete(self, transaction_id: str) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = self._find_row_index(sheet, transaction_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction {transaction_id}: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def put_many(self, transactions: list[Transaction]) -> int:
        """
        Upsert a batch of transactions.

        The id column is read once; rows already present are rewritten
        with one `batch_update` and the rest go out in one `append_rows`,
        so the request count does not grow with the batch. A retry
        re-reads the index, so rows appended by a failed attempt are
        updated rather than duplicated.
        """
        if not transactions:
            return 0
        try:
            sheet = self._client.get_transactions_sheet()
            index = self._row_index(sheet)
            updates = []
            new_rows = []
            for transaction in transactions:
                row = self._transaction_to_row(transaction)
                idx = index.get(transaction.id)
                if idx is None:
                    new_rows.append(row)
                else:
                    updates.append({"range": f"A{idx}", "values": [row]})
            if updates:
                sheet.batch_update(updates)
            if new_rows:
                sheet.append_rows(new_rows, value_input_option="RAW")
            return len(transactions)
        except Exception as e:
            raise StorageError(f"Failed to save {len(transactions)} transactions: {e}") from e

    async def delete_many(self, transaction_ids: list[str]) -> int:
        """Delete matching rows in a single batch request, bottom row first."""
        try:
            sheet = self._client.get_transactions_sheet()
            index = self._row_index(sheet)
            rows = sorted(
                {index[tid] for tid in transaction_ids if tid in index},
                reverse=True,
            )
            if not rows:
                return 0
            # Requests apply in order: deleting from the bottom keeps
            # the remaining row numbers valid
            self._client.get_spreadsheet().batch_update({
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": sheet.id,
                                "dimension": "ROWS",
                                "startIndex": row - 1,
                                "endIndex": row,
                            }
                        }
                    }
                    for row in rows
                ]
            })
            return len(rows)
        except Exception as e:
            raise StorageError(f"Failed to delete {len(transaction_ids)} transactions: {e}") from e

    async def clear(self) -> None:
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.clear()
            sheet.append_row(TRANSACTION_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear transactions: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception as e:
                logger.warning("audit_row_unreadable", error=str(e), event_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.error("audit_event_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
