"""
Shared test fixtures.

No test talks to Google: calendars come from FakeCalendarSource and the
ledger lives in InMemoryTransactionStorage.
"""

import asyncio
from typing import Optional

import pytest

from budcal.audit import AuditLogger
from budcal.config import SyncSettings
from budcal.models.calendar import (
    CalendarDetail,
    CalendarEvent,
    CalendarSummary,
    EventPage,
    EventStart,
)
from budcal.services.calendar import CalendarError, CalendarSourceInterface
from budcal.services.storage import InMemoryAuditStorage, InMemoryTransactionStorage


def make_calendar(
    calendar_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> CalendarSummary:
    return CalendarSummary(id=calendar_id, name=name or calendar_id, description=description)


def make_event(
    event_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    day: str = "2024-05-01",
    date_time: Optional[str] = None,
) -> CalendarEvent:
    start = EventStart(date_time=date_time) if date_time else EventStart(date=day)
    return CalendarEvent(id=event_id, title=title, description=description, start=start)


class FakeCalendarSource(CalendarSourceInterface):
    """
    In-process calendar source.

    `events` maps calendar id to its events, served `page_size` at a time.
    Calendar ids in `broken_events` fail while listing page `fail_on_page`.
    """

    def __init__(
        self,
        calendars: list[CalendarSummary],
        events: Optional[dict[str, list[CalendarEvent]]] = None,
        details: Optional[dict[str, str]] = None,
        page_size: int = 100,
        broken_events: tuple = (),
        fail_on_page: int = 0,
        broken_details: bool = False,
        broken_list: bool = False,
    ):
        self.calendars = calendars
        self.events = events or {}
        self.details = details or {}
        self.page_size = page_size
        self.broken_events = set(broken_events)
        self.fail_on_page = fail_on_page
        self.broken_details = broken_details
        self.broken_list = broken_list
        self.event_calls: list[tuple[str, Optional[str]]] = []

    async def list_calendars(self) -> list[CalendarSummary]:
        await asyncio.sleep(0)
        if self.broken_list:
            raise CalendarError("calendar list: HTTP 500")
        return list(self.calendars)

    async def get_calendar_detail(self, calendar_id: str) -> CalendarDetail:
        if self.broken_details:
            raise CalendarError(f"calendar {calendar_id}: HTTP 403")
        return CalendarDetail(description=self.details.get(calendar_id))

    async def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        page_token: Optional[str] = None,
    ) -> EventPage:
        self.event_calls.append((calendar_id, page_token))
        await asyncio.sleep(0)
        page = int(page_token or 0)
        if calendar_id in self.broken_events and page == self.fail_on_page:
            raise CalendarError(f"events of {calendar_id}: HTTP 500")

        items = self.events.get(calendar_id, [])
        start = page * self.page_size
        chunk = items[start:start + self.page_size]
        more = start + self.page_size < len(items)
        return EventPage(items=chunk, next_page_token=str(page + 1) if more else None)


@pytest.fixture
def storage() -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings()
