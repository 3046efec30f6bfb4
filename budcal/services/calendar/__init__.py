"""Calendar source services package."""

from budcal.services.calendar.interface import (
    CalendarConnectionError,
    CalendarError,
    CalendarNotFoundError,
    CalendarSourceInterface,
)
from budcal.services.calendar.google_calendar import (
    GoogleCalendarClient,
    GoogleCalendarSource,
)

__all__ = [
    "CalendarConnectionError",
    "CalendarError",
    "CalendarNotFoundError",
    "CalendarSourceInterface",
    "GoogleCalendarClient",
    "GoogleCalendarSource",
]
