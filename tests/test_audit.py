"""Tests for audit events and the audit logger."""

import asyncio
import json
from uuid import uuid4

from budcal.audit import AuditLogger, create_correlation_id
from budcal.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from budcal.services.storage import InMemoryAuditStorage


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp.tzinfo is not None
        assert event.severity == AuditSeverity.INFO

    def test_sheets_row_shape(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.calendar_skipped("cal-b", "B", "HTTP 500", correlation_id)

        row = event.to_sheets_row()

        assert len(row) == 11
        assert row[2] == "calendar_skipped"
        assert row[3] == "warning"
        assert row[5] == "cal-b"
        assert row[6] == str(correlation_id)
        assert json.loads(row[8]) == {"calendar_name": "B"}
        assert row[9] == "HTTP 500"

    def test_log_dict(self):
        event = AuditEventBuilder.transaction_deleted("t-1")

        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "transaction_deleted"
        assert log_dict["entity_id"] == "t-1"
        assert log_dict["correlation_id"] is None

    def test_sync_completed_severity(self):
        correlation_id = create_correlation_id()
        clean = AuditEventBuilder.sync_completed(correlation_id, 4, 2, 4, 0, [])
        partial = AuditEventBuilder.sync_completed(correlation_id, 2, 1, 2, 0, ["B"])

        assert clean.severity == AuditSeverity.INFO
        assert partial.severity == AuditSeverity.WARNING
        assert partial.details["skipped_calendars"] == ["B"]

    def test_edit_description_mentions_conversion(self):
        converted = AuditEventBuilder.transaction_edited("t-1", ["amount"], was_derived=True)
        plain = AuditEventBuilder.transaction_edited("t-1", ["amount"], was_derived=False)

        assert "now manual" in converted.description
        assert "now manual" not in plain.description


class TestAuditLogger:

    def test_persists_events(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        asyncio.run(logger.log_sync_started(correlation_id, "a", "b"))
        asyncio.run(logger.log_sync_failed(correlation_id, "enumerate", "boom"))

        events = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [
            AuditEventType.SYNC_STARTED,
            AuditEventType.SYNC_FAILED,
        ]
        assert events[1].severity == AuditSeverity.ERROR

    def test_local_only_logger(self):
        logger = AuditLogger()

        assert asyncio.run(logger.log(AuditEventBuilder.transaction_deleted("t-1"))) is True

    def test_storage_failure_is_swallowed(self):
        class BrokenStorage(InMemoryAuditStorage):
            async def append_event(self, event):
                raise RuntimeError("sheet gone")

        logger = AuditLogger(BrokenStorage())

        assert asyncio.run(logger.log(AuditEventBuilder.transaction_deleted("t-1"))) is False

    def test_external_service_error(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        asyncio.run(logger.log_external_service_error("google_calendar", "HTTP 503"))

        (external,) = storage.events
        assert external.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert external.severity == AuditSeverity.ERROR
        assert external.error_message == "HTTP 503"
        assert external.details == {"service": "google_calendar"}

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()
