"""
Audit Logger

DESIGN DECISION: Every sync, diagnostics run and ledger change is logged.
This provides:
1. Traceability of why a transaction exists (or was removed)
2. A record of calendars skipped because they could not be read
3. User-visible history of their syncs

The audit logger:
- Is async, like the flows that call it
- Gracefully handles failures (a failing audit sheet never fails a sync)
- Supports correlation IDs so all events of one sync can be grouped
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budcal.models.audit import AuditEvent, AuditEventBuilder
from budcal.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes every audit event twice.

    Targets:
    1. structlog, as one JSON line
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Where events are persisted.
                    If None, events only reach the local log.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budcal.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Emit locally, then persist when a backend is configured.

        Returns False only when the backend failed to take the event.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_sync_started(
        self,
        correlation_id: UUID,
        time_min: str,
        time_max: str,
    ) -> None:
        await self.log(AuditEventBuilder.sync_started(
            correlation_id=correlation_id,
            time_min=time_min,
            time_max=time_max,
        ))

    async def log_sync_completed(
        self,
        correlation_id: UUID,
        total_found: int,
        calendars_scanned: int,
        created: int,
        removed: int,
        skipped_calendars: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.sync_completed(
            correlation_id=correlation_id,
            total_found=total_found,
            calendars_scanned=calendars_scanned,
            created=created,
            removed=removed,
            skipped_calendars=skipped_calendars,
        ))

    async def log_sync_failed(
        self,
        correlation_id: UUID,
        stage: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.sync_failed(
            correlation_id=correlation_id,
            stage=stage,
            error_message=error_message,
        ))

    async def log_calendar_skipped(
        self,
        calendar_id: str,
        calendar_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.calendar_skipped(
            calendar_id=calendar_id,
            calendar_name=calendar_name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_transactions_reconciled(
        self,
        correlation_id: UUID,
        kept_manual: int,
        upserted: int,
        removed: int,
    ) -> None:
        await self.log(AuditEventBuilder.transactions_reconciled(
            correlation_id=correlation_id,
            kept_manual=kept_manual,
            upserted=upserted,
            removed=removed,
        ))

    async def log_diagnostics_run(
        self,
        calendar_count: int,
        with_rule: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.diagnostics_run(
            calendar_count=calendar_count,
            with_rule=with_rule,
            correlation_id=correlation_id,
        ))

    async def log_transaction_saved(
        self,
        transaction_id: str,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_edited(
        self,
        transaction_id: str,
        changed_fields: list[str],
        was_derived: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_edited(
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            was_derived=was_derived,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """A Google API call failed (the sync itself may carry on)."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    New id grouping every event of one user action.

    Created when a sync or diagnostics run starts and passed down
    to everything it logs.
    """
    return uuid4()
