"""
Calendar Source Models

Already-decoded shapes returned by a calendar source. The reconciliation
engine never sees raw API payloads, only these models.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CalendarSummary(BaseModel):
    """One entry of the user's calendar list."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="", description="Display name (summary)")
    description: Optional[str] = None


class CalendarDetail(BaseModel):
    """Finer-grained calendar metadata (the calendar's own description)."""

    description: Optional[str] = None


class EventStart(BaseModel):
    """
    Start of an event: timed events carry `date_time`,
    all-day events carry `date`.
    """
    model_config = ConfigDict(populate_by_name=True)

    date_time: Optional[str] = Field(default=None, alias="dateTime")
    date: Optional[str] = None

    @model_validator(mode='after')
    def require_one(self) -> 'EventStart':
        if not self.date_time and not self.date:
            raise ValueError("Event start needs dateTime or date")
        return self

    @property
    def value(self) -> str:
        return self.date_time or self.date


class CalendarEvent(BaseModel):
    """A single (expanded) calendar event."""

    id: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    start: EventStart


class EventPage(BaseModel):
    """One page of an event listing."""

    items: list[CalendarEvent] = Field(default_factory=list)
    next_page_token: Optional[str] = None
