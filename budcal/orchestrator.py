"""
Main Orchestrator for BudCal

This module ties together all the components and defines the
end-to-end flows for:
1. Calendar sync (calendars → rules → candidate transactions → ledger)
2. Diagnostics (what does each calendar resolve to?)
3. Manual ledger changes (add, edit, delete, summarize)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Manual transactions are never overwritten by a sync
- The ledger is only written after every calendar has been read
- A broken calendar is skipped, a broken calendar list aborts the sync
- Every run is audited

RECONCILIATION: instead of wiping the ledger and re-inserting it, the
sync upserts the freshly derived transactions and then deletes only
the calendar-derived rows that are no longer produced. Manual rows are
never touched, so a crash half-way through cannot lose them.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from budcal.audit import AuditLogger, create_correlation_id
from budcal.config import SyncSettings, get_settings
from budcal.models.calendar import CalendarEvent, CalendarSummary
from budcal.models.transaction import (
    DESCRIPTION_MAX_LENGTH,
    CalendarDiagnosis,
    LedgerSummary,
    SyncReport,
    TimeWindow,
    Transaction,
    TransactionKind,
    TransactionOrigin,
)
from budcal.queries import LedgerQueries
from budcal.rules import event_text, resolve_calendar_default, resolve_with_default
from budcal.services.calendar import CalendarSourceInterface, GoogleCalendarSource
from budcal.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = {"date", "amount", "kind", "description"}


class SyncError(Exception):
    """Base exception for sync failures."""
    pass


class CalendarEnumerationError(SyncError):
    """The calendar list could not be read; nothing was written."""
    pass


class SyncInProgressError(SyncError):
    """A sync is already running on this flow."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _list_calendars(source: CalendarSourceInterface) -> list[CalendarSummary]:
    try:
        return await source.list_calendars()
    except Exception as e:
        raise CalendarEnumerationError(f"Could not list calendars: {e}") from e


async def read_calendar_description(
    source: CalendarSourceInterface,
    calendar: CalendarSummary,
) -> Optional[str]:
    """
    The calendar's own description, or the list-level one.

    A failing detail lookup silently degrades to the list description.
    """
    try:
        detail = await source.get_calendar_detail(calendar.id)
        if detail.description:
            return detail.description
    except Exception as e:
        logger.debug(
            "calendar_detail_unavailable",
            calendar_id=calendar.id,
            error=str(e),
        )
    return calendar.description


class CalendarSyncFlow:
    """
    Orchestrates the calendar-to-ledger reconciliation.

    Flow:
    1. Load ledger → split manual / calendar-derived
    2. List calendars (fatal on failure)
    3. Per calendar, sequentially: description → default rule →
       all event pages → classify each event (per-calendar failures skip)
    4. Upsert candidates, delete stale derived rows
    5. Report

    Only one sync may run at a time on a flow instance.
    """

    def __init__(
        self,
        calendar_source: CalendarSourceInterface,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        sync_settings: Optional[SyncSettings] = None,
    ):
        self._source = calendar_source
        self._storage = transaction_storage
        self._audit_logger = audit_logger
        self._settings = sync_settings or get_settings().sync
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def default_window(self, now: Optional[datetime] = None) -> TimeWindow:
        return TimeWindow.around(
            now=now,
            years_back=self._settings.window_years_back,
            years_forward=self._settings.window_years_forward,
        )

    async def sync(
        self,
        window: Optional[TimeWindow] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SyncReport:
        """
        Run one reconciliation pass.

        Raises:
            SyncInProgressError: If this flow is already syncing
            CalendarEnumerationError: If calendars cannot be listed
            StorageError: If the ledger cannot be read or written
        """
        if self._running:
            raise SyncInProgressError("A calendar sync is already running")

        self._running = True
        try:
            return await self._sync(
                window or self.default_window(),
                correlation_id or create_correlation_id(),
            )
        finally:
            self._running = False

    async def _sync(self, window: TimeWindow, correlation_id: UUID) -> SyncReport:
        report = SyncReport()
        log = logger.bind(correlation_id=str(correlation_id))

        if self._audit_logger:
            await self._audit_logger.log_sync_started(
                correlation_id=correlation_id,
                time_min=window.time_min,
                time_max=window.time_max,
            )

        try:
            stored = await self._storage.get_all()
        except StorageError as e:
            await self._fail(correlation_id, "load", e)
            raise

        manual = [t for t in stored if t.is_manual]
        derived = {t.id: t for t in stored if not t.is_manual}
        pinned = {t.external_event_id for t in manual if t.external_event_id}
        pinned.update(t.id for t in manual)

        try:
            calendars = await _list_calendars(self._source)
        except CalendarEnumerationError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="google_calendar",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            await self._fail(correlation_id, "enumerate", e)
            raise

        candidates: dict[str, Transaction] = {}
        for calendar in calendars:
            description = await read_calendar_description(self._source, calendar)
            default = resolve_calendar_default(description, calendar.name)
            if default.rule is not None:
                report.rules.append(f"{calendar.name}: {default.rule.label}")

            try:
                events = await self._collect_events(calendar, window)
            except Exception as e:
                log.warning(
                    "calendar_skipped",
                    calendar_id=calendar.id,
                    calendar_name=calendar.name,
                    error=str(e),
                )
                report.skipped_calendars.append(calendar.name)
                if self._audit_logger:
                    await self._audit_logger.log_calendar_skipped(
                        calendar_id=calendar.id,
                        calendar_name=calendar.name,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    await self._audit_logger.log_external_service_error(
                        service="google_calendar",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                continue

            report.calendars_scanned += 1
            report.total_found += len(events)

            for event in events:
                if event.id in pinned:
                    continue
                if event.id in candidates:
                    # Shared event seen in an earlier calendar
                    log.debug("duplicate_event_ignored", event_id=event.id, calendar_id=calendar.id)
                    continue

                classification = resolve_with_default(
                    default.rule,
                    event_text(event.title, event.description),
                )
                if not classification.is_materializable:
                    continue

                try:
                    candidates[event.id] = self._derive_transaction(
                        event,
                        calendar,
                        classification.kind,
                        classification.amount,
                        previous=derived.get(event.id),
                    )
                except ValidationError as e:
                    # Drop only this event
                    log.warning(
                        "event_skipped",
                        event_id=event.id,
                        calendar_id=calendar.id,
                        error=str(e),
                    )

        try:
            upserted, removed = await self._reconcile(derived, candidates)
        except StorageError as e:
            await self._fail(correlation_id, "write", e)
            raise

        report.created_transactions = len(candidates)
        report.removed_transactions = removed
        report.finished_at = _utcnow()

        log.info(
            "sync_completed",
            total_found=report.total_found,
            calendars_scanned=report.calendars_scanned,
            created=report.created_transactions,
            upserted=upserted,
            removed=removed,
        )
        if self._audit_logger:
            await self._audit_logger.log_transactions_reconciled(
                correlation_id=correlation_id,
                kept_manual=len(manual),
                upserted=upserted,
                removed=removed,
            )
            await self._audit_logger.log_sync_completed(
                correlation_id=correlation_id,
                total_found=report.total_found,
                calendars_scanned=report.calendars_scanned,
                created=report.created_transactions,
                removed=removed,
                skipped_calendars=report.skipped_calendars,
            )

        return report

    async def _collect_events(
        self,
        calendar: CalendarSummary,
        window: TimeWindow,
    ) -> list[CalendarEvent]:
        """Read every page of a calendar's events in the window."""
        events: list[CalendarEvent] = []
        page_token: Optional[str] = None
        while True:
            page = await self._source.list_events(
                calendar.id,
                window.time_min,
                window.time_max,
                page_token=page_token,
            )
            events.extend(page.items)
            page_token = page.next_page_token
            if not page_token:
                return events

    def _derive_transaction(
        self,
        event: CalendarEvent,
        calendar: CalendarSummary,
        kind: TransactionKind,
        amount: Decimal,
        previous: Optional[Transaction] = None,
    ) -> Transaction:
        title = (event.title or "").strip() or self._settings.untitled_placeholder
        transaction = Transaction(
            id=event.id,
            date=event.start.value,
            amount=amount,
            kind=kind,
            description=title[:DESCRIPTION_MAX_LENGTH],
            origin=TransactionOrigin.CALENDAR,
            external_event_id=event.id,
            calendar_name=calendar.name,
        )
        if previous is not None:
            transaction.created_at = previous.created_at
        return transaction

    async def _reconcile(
        self,
        derived: dict[str, Transaction],
        candidates: dict[str, Transaction],
    ) -> tuple[int, int]:
        """
        Bring the calendar-derived slice of the ledger in line with candidates.

        Changed rows are written in one batch, then stale rows are
        deleted in one batch.

        Returns:
            (rows written, rows deleted)
        """
        changed = [
            transaction for transaction in candidates.values()
            if transaction.id not in derived
            or not _same_content(derived[transaction.id], transaction)
        ]
        stale = [transaction_id for transaction_id in derived if transaction_id not in candidates]

        upserted = await self._storage.put_many(changed) if changed else 0
        removed = await self._storage.delete_many(stale) if stale else 0
        return upserted, removed

    async def _fail(self, correlation_id: UUID, stage: str, error: Exception) -> None:
        logger.error("sync_failed", correlation_id=str(correlation_id), stage=stage, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_sync_failed(
                correlation_id=correlation_id,
                stage=stage,
                error_message=str(error),
            )


def _same_content(a: Transaction, b: Transaction) -> bool:
    exclude = {"created_at", "updated_at"}
    return a.model_dump(exclude=exclude) == b.model_dump(exclude=exclude)


class DiagnosticsFlow:
    """
    Explains what each calendar resolves to.

    Read-only. The rule language is purely textual, so this is the only
    way for a user to see why a sync produced nothing for a calendar.
    """

    def __init__(
        self,
        calendar_source: CalendarSourceInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._source = calendar_source
        self._audit_logger = audit_logger

    async def diagnose(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> list[CalendarDiagnosis]:
        """
        Report, per calendar, the description read and the rule detected.

        Raises:
            CalendarEnumerationError: If calendars cannot be listed
        """
        correlation_id = correlation_id or create_correlation_id()
        calendars = await _list_calendars(self._source)

        diagnoses = []
        for calendar in calendars:
            description = await read_calendar_description(self._source, calendar)
            default = resolve_calendar_default(description, calendar.name)
            diagnoses.append(
                CalendarDiagnosis(
                    calendar_name=calendar.name,
                    calendar_id=calendar.id,
                    description_used=default.text if default.rule else (description or ""),
                    rule_detected=default.rule,
                    rule_source=default.source,
                )
            )

        if self._audit_logger:
            await self._audit_logger.log_diagnostics_run(
                calendar_count=len(diagnoses),
                with_rule=sum(1 for d in diagnoses if d.rule_detected),
                correlation_id=correlation_id,
            )
        return diagnoses


class LedgerFlow:
    """
    Manual ledger operations.

    Editing a calendar-derived transaction converts it to a manual one
    with the same id and event id, which pins the event: later syncs
    leave it alone.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = transaction_storage
        self._queries = LedgerQueries(transaction_storage)
        self._audit_logger = audit_logger

    async def add_transaction(
        self,
        kind: TransactionKind,
        amount: Decimal,
        description: str,
        date: Optional[str] = None,
    ) -> Transaction:
        """Record a hand-entered transaction."""
        values = dict(kind=kind, amount=amount, description=description)
        if date:
            values["date"] = date
        transaction = Transaction(origin=TransactionOrigin.MANUAL, **values)

        await self._storage.put(transaction)

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(
                transaction_id=transaction.id,
                kind=transaction.kind.value,
                amount=str(transaction.amount),
            )
        return transaction

    async def edit_transaction(self, transaction_id: str, **changes) -> Transaction:
        """
        Apply user edits; the result is always a manual transaction.

        Raises:
            NotFoundError: If no transaction has this id
            ValueError: If a non-editable field is passed or the result is invalid
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        existing = await self._storage.get_by_id(transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        values = existing.model_dump()
        values.update(changes)
        values["origin"] = TransactionOrigin.MANUAL
        values["updated_at"] = _utcnow()
        updated = Transaction(**values)

        await self._storage.put(updated)

        if self._audit_logger:
            await self._audit_logger.log_transaction_edited(
                transaction_id=updated.id,
                changed_fields=sorted(changes),
                was_derived=not existing.is_manual,
            )
        return updated

    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction.

        A deleted calendar-derived transaction is re-derived by the next sync.
        """
        deleted = await self._storage.delete(transaction_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_deleted(transaction_id=transaction_id)
        return deleted

    async def list_transactions(
        self,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        return await self._queries.list_transactions(kind=kind)

    async def summarize(self, **filters) -> LedgerSummary:
        return await self._queries.summarize(**filters)


def create_app_components(
    use_storage: bool = True,
    calendar_source: Optional[CalendarSourceInterface] = None,
) -> tuple[CalendarSyncFlow, DiagnosticsFlow, LedgerFlow]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to keep the ledger in memory.
        calendar_source: Override the Google Calendar source.

    Returns:
        (sync_flow, diagnostics_flow, ledger_flow)
    """
    settings = get_settings()
    logging.basicConfig(level=settings.app.effective_log_level, format="%(message)s")

    transaction_storage: TransactionStorageInterface
    audit_logger: AuditLogger

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            transaction_storage = InMemoryTransactionStorage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        transaction_storage = InMemoryTransactionStorage()
        audit_logger = AuditLogger()  # Local-only logging

    source = calendar_source or GoogleCalendarSource()

    sync_flow = CalendarSyncFlow(
        calendar_source=source,
        transaction_storage=transaction_storage,
        audit_logger=audit_logger,
        sync_settings=settings.sync,
    )
    diagnostics_flow = DiagnosticsFlow(
        calendar_source=source,
        audit_logger=audit_logger,
    )
    ledger_flow = LedgerFlow(
        transaction_storage=transaction_storage,
        audit_logger=audit_logger,
    )

    return sync_flow, diagnostics_flow, ledger_flow
