"""
Audit Models for BudCal

Every sync, diagnostics run and manual ledger change is logged.
This provides:
1. Complete traceability of what a sync created or removed
2. Debugging information when a calendar is skipped
3. Ability to reconstruct why a transaction exists

DESIGN DECISION: The audit trail only grows; nothing rewrites past events.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Sync
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    CALENDAR_SKIPPED = "calendar_skipped"
    TRANSACTIONS_RECONCILED = "transactions_reconciled"

    # Diagnostics
    DIAGNOSTICS_RUN = "diagnostics_run"

    # Manual ledger changes
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_EDITED = "transaction_edited"
    TRANSACTION_DELETED = "transaction_deleted"

    # External services
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    One row of the audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'sync', 'calendar', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one sync run share an id
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Flat dict for structlog keyword arguments.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        One AuditLog sheet row.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Factory methods, one per thing that happens in BudCal.

    Usage:
        event = AuditEventBuilder.sync_started(correlation_id, time_min, time_max)
        event = AuditEventBuilder.calendar_skipped(calendar_id, name, error, correlation_id)
    """

    @staticmethod
    def sync_started(
        correlation_id: UUID,
        time_min: str,
        time_max: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            entity_type="sync",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=f"Calendar sync started for {time_min} .. {time_max}",
            details={
                "time_min": time_min,
                "time_max": time_max,
            },
            is_user_action=True,
        )

    @staticmethod
    def sync_completed(
        correlation_id: UUID,
        total_found: int,
        calendars_scanned: int,
        created: int,
        removed: int,
        skipped_calendars: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if skipped_calendars else AuditSeverity.INFO,
            entity_type="sync",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=(
                f"Calendar sync completed: {created} transactions from "
                f"{total_found} events in {calendars_scanned} calendars"
            ),
            details={
                "total_found": total_found,
                "calendars_scanned": calendars_scanned,
                "created_transactions": created,
                "removed_transactions": removed,
                "skipped_calendars": skipped_calendars,
            },
        )

    @staticmethod
    def sync_failed(
        correlation_id: UUID,
        stage: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="sync",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=f"Calendar sync failed during {stage}",
            details={"stage": stage},
            error_message=error_message,
        )

    @staticmethod
    def calendar_skipped(
        calendar_id: str,
        calendar_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CALENDAR_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="calendar",
            entity_id=calendar_id,
            correlation_id=correlation_id,
            description=f"Could not read calendar {calendar_name}",
            details={"calendar_name": calendar_name},
            error_message=error_message,
        )

    @staticmethod
    def transactions_reconciled(
        correlation_id: UUID,
        kept_manual: int,
        upserted: int,
        removed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_RECONCILED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger reconciled: {upserted} upserted, {removed} removed",
            details={
                "kept_manual": kept_manual,
                "upserted": upserted,
                "removed": removed,
            },
        )

    @staticmethod
    def diagnostics_run(
        calendar_count: int,
        with_rule: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DIAGNOSTICS_RUN,
            entity_type="diagnostics",
            correlation_id=correlation_id,
            description=f"Diagnostics: {with_rule} of {calendar_count} calendars have a rule",
            details={
                "calendar_count": calendar_count,
                "calendars_with_rule": with_rule,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {kind} €{amount}",
            details={"kind": kind, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_edited(
        transaction_id: str,
        changed_fields: list[str],
        was_derived: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_EDITED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction edited" + (" (now manual)" if was_derived else ""),
            details={
                "changed_fields": changed_fields,
                "converted_from_calendar": was_derived,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction deleted: {transaction_id}",
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
