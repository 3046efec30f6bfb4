"""
Tests for the storage backends.

The Google Sheets classes are exercised against a mocked worksheet,
so no spreadsheet is touched.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from budcal.models.audit import AuditEventBuilder
from budcal.models.transaction import Transaction, TransactionKind, TransactionOrigin
from budcal.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsAuditStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    StorageError,
)
from budcal.services.storage.google_sheets import AUDIT_COLUMNS, TRANSACTION_COLUMNS


def sample_transaction(**overrides) -> Transaction:
    values = dict(
        id="evt-1",
        date="2024-05-01",
        amount=Decimal("30.50"),
        kind=TransactionKind.EXPENSE,
        description="Cena",
        origin=TransactionOrigin.CALENDAR,
        external_event_id="evt-1",
        calendar_name="Spese",
    )
    values.update(overrides)
    return Transaction(**values)


@pytest.fixture
def sheet():
    worksheet = MagicMock()
    worksheet.col_values.return_value = ["id"]
    worksheet.get_all_values.return_value = [TRANSACTION_COLUMNS]
    return worksheet


@pytest.fixture
def sheets_client(sheet):
    client = MagicMock()
    client.get_transactions_sheet.return_value = sheet
    return client


@pytest.fixture
def sheets_storage(sheets_client):
    return GoogleSheetsTransactionStorage(sheets_client)


class TestGoogleSheetsTransactionStorage:

    def test_put_appends_new_row(self, sheets_storage, sheet):
        t = sample_transaction()

        assert asyncio.run(sheets_storage.put(t)) == "evt-1"

        sheet.append_row.assert_called_once()
        row = sheet.append_row.call_args.args[0]
        assert row[:8] == [
            "evt-1", "2024-05-01", "30.50", "expense", "Cena",
            "calendar", "evt-1", "Spese",
        ]
        sheet.update.assert_not_called()

    def test_put_updates_existing_row(self, sheets_storage, sheet):
        sheet.col_values.return_value = ["id", "other", "evt-1"]
        t = sample_transaction(amount=Decimal("35"))

        asyncio.run(sheets_storage.put(t))

        sheet.update.assert_called_once()
        assert sheet.update.call_args.kwargs["range_name"] == "A3"
        assert sheet.update.call_args.kwargs["values"][0][2] == "35"
        sheet.append_row.assert_not_called()

    def test_get_all_reads_rows(self, sheets_storage, sheet):
        t = sample_transaction()
        manual = Transaction(amount=Decimal("5"), kind=TransactionKind.INCOME, description="Regalo")
        sheet.get_all_values.return_value = [
            TRANSACTION_COLUMNS,
            sheets_storage._transaction_to_row(t),
            [],
            sheets_storage._transaction_to_row(manual),
        ]

        stored = asyncio.run(sheets_storage.get_all())

        assert stored == [t, manual]

    def test_get_all_rejects_malformed_rows(self, sheets_storage, sheet):
        row = sheets_storage._transaction_to_row(sample_transaction())
        row[3] = "unclassified"
        sheet.get_all_values.return_value = [TRANSACTION_COLUMNS, row]

        with pytest.raises(StorageError, match="row 2"):
            asyncio.run(sheets_storage.get_all())

    def test_read_failure_is_storage_error(self, sheets_storage, sheet):
        sheet.get_all_values.side_effect = RuntimeError("quota")

        with pytest.raises(StorageError):
            asyncio.run(sheets_storage.get_all())

    def test_get_by_id(self, sheets_storage, sheet):
        t = sample_transaction()
        sheet.get_all_values.return_value = [TRANSACTION_COLUMNS, sheets_storage._transaction_to_row(t)]

        assert asyncio.run(sheets_storage.get_by_id("evt-1")) == t
        assert asyncio.run(sheets_storage.get_by_id("missing")) is None

    def test_delete(self, sheets_storage, sheet):
        sheet.col_values.return_value = ["id", "evt-1"]

        assert asyncio.run(sheets_storage.delete("evt-1")) is True
        sheet.delete_rows.assert_called_once_with(2)

        assert asyncio.run(sheets_storage.delete("missing")) is False

    def test_clear_keeps_header(self, sheets_storage, sheet):
        asyncio.run(sheets_storage.clear())

        sheet.clear.assert_called_once()
        sheet.append_row.assert_called_once_with(TRANSACTION_COLUMNS)

    def test_put_many_uses_constant_api_calls(self, sheets_storage, sheet):
        """Two hundred rows cost one index read and two writes."""
        sheet.col_values.return_value = ["id", "evt-0", "evt-1"]
        batch = [sample_transaction(id=f"evt-{n}", external_event_id=f"evt-{n}") for n in range(200)]

        assert asyncio.run(sheets_storage.put_many(batch)) == 200

        sheet.col_values.assert_called_once_with(1)
        sheet.batch_update.assert_called_once()
        updates = sheet.batch_update.call_args.args[0]
        assert [u["range"] for u in updates] == ["A2", "A3"]
        sheet.append_rows.assert_called_once()
        assert len(sheet.append_rows.call_args.args[0]) == 198
        assert sheet.append_rows.call_args.kwargs["value_input_option"] == "RAW"
        sheet.append_row.assert_not_called()
        sheet.update.assert_not_called()

    def test_put_many_empty_batch_touches_nothing(self, sheets_storage, sheets_client):
        assert asyncio.run(sheets_storage.put_many([])) == 0
        sheets_client.get_transactions_sheet.assert_not_called()

    def test_delete_many_single_request_bottom_up(self, sheets_storage, sheets_client, sheet):
        sheet.col_values.return_value = ["id", "a", "b", "c", "d"]
        sheet.id = 7

        assert asyncio.run(sheets_storage.delete_many(["b", "missing", "d", "a"])) == 3

        sheet.col_values.assert_called_once_with(1)
        sheet.delete_rows.assert_not_called()
        batch_update = sheets_client.get_spreadsheet.return_value.batch_update
        batch_update.assert_called_once()
        requests = batch_update.call_args.args[0]["requests"]
        ranges = [r["deleteDimension"]["range"] for r in requests]
        assert [r["startIndex"] for r in ranges] == [4, 2, 1]
        assert all(r["sheetId"] == 7 and r["dimension"] == "ROWS" for r in ranges)

    def test_delete_many_nothing_matching(self, sheets_storage, sheets_client, sheet):
        sheet.col_values.return_value = ["id", "a"]

        assert asyncio.run(sheets_storage.delete_many(["zzz"])) == 0
        sheets_client.get_spreadsheet.return_value.batch_update.assert_not_called()


class TestGoogleSheetsClient:

    def test_worksheet_is_looked_up_once(self):
        client = GoogleSheetsClient(MagicMock(transactions_sheet_name="Transactions"))
        spreadsheet = MagicMock()
        client._spreadsheet = spreadsheet

        first = client.get_transactions_sheet()
        second = client.get_transactions_sheet()

        assert first is second
        spreadsheet.worksheet.assert_called_once_with("Transactions")


class TestGoogleSheetsAuditStorage:

    @pytest.fixture
    def audit_sheet(self):
        worksheet = MagicMock()
        worksheet.get_all_values.return_value = [AUDIT_COLUMNS]
        return worksheet

    @pytest.fixture
    def audit_storage(self, audit_sheet):
        client = MagicMock()
        client.get_audit_sheet.return_value = audit_sheet
        return GoogleSheetsAuditStorage(client)

    def test_append_event(self, audit_storage, audit_sheet):
        event = AuditEventBuilder.transaction_deleted("evt-1")

        assert asyncio.run(audit_storage.append_event(event)) is True
        audit_sheet.append_row.assert_called_once_with(event.to_sheets_row(), value_input_option="RAW")

    def test_append_failure_returns_false(self, audit_storage, audit_sheet):
        audit_sheet.append_row.side_effect = RuntimeError("quota")

        assert asyncio.run(audit_storage.append_event(AuditEventBuilder.transaction_deleted("x"))) is False

    def test_events_by_correlation_id(self, audit_storage, audit_sheet):
        correlation_id = uuid4()
        started = AuditEventBuilder.sync_started(correlation_id, "2024-01-01", "2025-01-01")
        failed = AuditEventBuilder.sync_failed(correlation_id, "enumerate", "HTTP 500")
        unrelated = AuditEventBuilder.transaction_deleted("x")
        audit_sheet.get_all_values.return_value = [
            AUDIT_COLUMNS,
            started.to_sheets_row(),
            unrelated.to_sheets_row(),
            failed.to_sheets_row(),
        ]

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))

        assert [e.event_id for e in events] == [started.event_id, failed.event_id]
        assert events[0].details == {"time_min": "2024-01-01", "time_max": "2025-01-01"}
        assert events[1].error_message == "HTTP 500"

    def test_unreadable_rows_are_skipped(self, audit_storage, audit_sheet):
        audit_sheet.get_all_values.return_value = [AUDIT_COLUMNS, ["not-a-uuid"]]

        assert asyncio.run(audit_storage.get_recent_events()) == []


class TestInMemoryStorage:

    def test_returns_copies(self):
        storage = InMemoryTransactionStorage([sample_transaction()])

        [t] = asyncio.run(storage.get_all())
        t.amount = Decimal("999")

        assert asyncio.run(storage.get_by_id("evt-1")).amount == Decimal("30.50")

    def test_put_replaces_by_id(self):
        storage = InMemoryTransactionStorage([sample_transaction()])

        asyncio.run(storage.put(sample_transaction(amount=Decimal("1"))))

        assert [t.amount for t in asyncio.run(storage.get_all())] == [Decimal("1")]

    def test_bulk_put_and_delete(self):
        storage = InMemoryTransactionStorage([sample_transaction()])

        written = asyncio.run(storage.put_many([
            sample_transaction(amount=Decimal("2")),
            sample_transaction(id="evt-2", external_event_id="evt-2"),
        ]))
        removed = asyncio.run(storage.delete_many(["evt-1", "missing"]))

        assert written == 2
        assert removed == 1
        assert [t.id for t in asyncio.run(storage.get_all())] == ["evt-2"]

    def test_audit_recent_events_newest_first(self):
        storage = InMemoryAuditStorage()
        first = AuditEventBuilder.transaction_deleted("a")
        second = AuditEventBuilder.transaction_deleted("b").model_copy(
            update={"timestamp": first.timestamp + timedelta(seconds=1)}
        )
        asyncio.run(storage.append_event(first))
        asyncio.run(storage.append_event(second))

        recent = asyncio.run(storage.get_recent_events(limit=1))

        assert len(recent) == 1
        assert recent[0].entity_id == "b"
