"""
Abstract Calendar Source Interface

DESIGN DECISION: The sync never talks to a calendar API directly.
It depends on this narrow contract, injected at construction time, so
that:
1. Credentials and sessions live in the adapter, not in module globals
2. Tests can drive the whole sync with a fake source
3. Another provider (CalDAV, Outlook) can be added without touching the engine
"""

from abc import ABC, abstractmethod
from typing import Optional

from budcal.models.calendar import (
    CalendarDetail,
    CalendarSummary,
    EventPage,
)


class CalendarSourceInterface(ABC):
    """Read-only access to the user's calendars and their events."""

    @abstractmethod
    async def list_calendars(self) -> list[CalendarSummary]:
        """
        Enumerate the user's calendars.

        Raises:
            CalendarError: If the calendar list cannot be read
        """
        pass

    @abstractmethod
    async def get_calendar_detail(self, calendar_id: str) -> CalendarDetail:
        """
        Fetch a calendar's own metadata (its full description).

        Raises:
            CalendarError: If the calendar cannot be read
        """
        pass

    @abstractmethod
    async def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        page_token: Optional[str] = None,
    ) -> EventPage:
        """
        Fetch one page of single (expanded) events ordered by start time.

        Args:
            calendar_id: Calendar to read
            time_min: RFC 3339 lower bound on event end
            time_max: RFC 3339 upper bound on event start
            page_token: Continuation token from the previous page

        Raises:
            CalendarError: If the page cannot be read
        """
        pass


class CalendarError(Exception):
    """Base exception for calendar source errors."""
    pass


class CalendarNotFoundError(CalendarError):
    """The calendar does not exist or is not shared with us."""
    pass


class CalendarConnectionError(CalendarError):
    """Could not authenticate with or reach the calendar backend."""
    pass
