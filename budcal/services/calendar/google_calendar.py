"""
Google Calendar Source

Implements CalendarSourceInterface on top of the Calendar v3 API.

DESIGN DECISION: Authentication is entirely google-auth's business.
We load service-account credentials (optionally impersonating a user)
and never handle tokens ourselves.

The API client is synchronous; every request is executed in a worker
thread so the sync stays cooperative. Transient failures (rate limits,
5xx, network errors) are retried with exponential backoff.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from budcal.config import GoogleCalendarSettings, get_settings
from budcal.models.calendar import (
    CalendarDetail,
    CalendarEvent,
    CalendarSummary,
    EventPage,
)
from budcal.services.calendar.interface import (
    CalendarConnectionError,
    CalendarError,
    CalendarNotFoundError,
    CalendarSourceInterface,
)


logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def _http_status(exc: HttpError) -> int:
    return int(getattr(exc.resp, "status", 0) or 0)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, HttpError):
        return _http_status(exc) in TRANSIENT_STATUSES
    return isinstance(exc, (TimeoutError, OSError))


class GoogleCalendarClient:
    """
    Low-level Calendar API wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(
        self,
        settings: Optional[GoogleCalendarSettings] = None,
        service: Optional[Resource] = None,
    ):
        self._service = service
        self._settings = settings

    @property
    def settings(self) -> GoogleCalendarSettings:
        if self._settings is None:
            self._settings = get_settings().google_calendar
        return self._settings

    def connect(self) -> Resource:
        """Build the Calendar service on first use."""
        if self._service is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self.settings.credentials_path,
                    scopes=SCOPES,
                )
                if self.settings.delegated_user:
                    credentials = credentials.with_subject(self.settings.delegated_user)
                self._service = build(
                    "calendar",
                    "v3",
                    credentials=credentials,
                    cache_discovery=False,
                )
            except FileNotFoundError:
                raise CalendarConnectionError(
                    f"Google credentials file not found: {self.settings.credentials_path}"
                )
            except Exception as e:
                raise CalendarConnectionError(
                    f"Failed to connect to Google Calendar: {e}"
                ) from e
        return self._service

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def call(self, make_request: Callable[[Resource], Any]) -> dict:
        """
        Build a request against the service and execute it off-loop.

        `make_request` is re-invoked on every attempt.
        """
        request = make_request(self.connect())
        return await asyncio.to_thread(request.execute)


class GoogleCalendarSource(CalendarSourceInterface):
    """
    Google Calendar implementation of the calendar source.

    Converts API payloads into CalendarSummary / CalendarEvent models.
    """

    def __init__(
        self,
        client: Optional[GoogleCalendarClient] = None,
        page_size: Optional[int] = None,
    ):
        self._client = client or GoogleCalendarClient()
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size or self._client.settings.page_size

    async def _call(self, what: str, make_request: Callable[[Resource], Any]) -> dict:
        try:
            return await self._client.call(make_request)
        except HttpError as e:
            status = _http_status(e)
            if status == 404:
                raise CalendarNotFoundError(f"{what}: not found") from e
            raise CalendarError(f"{what}: HTTP {status}") from e
        except CalendarError:
            raise
        except Exception as e:
            raise CalendarError(f"{what}: {e}") from e

    async def list_calendars(self) -> list[CalendarSummary]:
        calendars: list[CalendarSummary] = []
        page_token: Optional[str] = None
        while True:
            payload = await self._call(
                "calendar list",
                lambda service: service.calendarList().list(pageToken=page_token),
            )
            for item in payload.get("items", []):
                calendars.append(
                    CalendarSummary(
                        id=item["id"],
                        name=item.get("summaryOverride") or item.get("summary") or "",
                        description=item.get("description"),
                    )
                )
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        logger.debug("calendars_listed", count=len(calendars))
        return calendars

    async def get_calendar_detail(self, calendar_id: str) -> CalendarDetail:
        payload = await self._call(
            f"calendar {calendar_id}",
            lambda service: service.calendars().get(calendarId=calendar_id),
        )
        return CalendarDetail(description=payload.get("description"))

    async def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        page_token: Optional[str] = None,
    ) -> EventPage:
        payload = await self._call(
            f"events of {calendar_id}",
            lambda service: service.events().list(
                calendarId=calendar_id,
                timeMin=time_min,
                timeMax=time_max,
                showDeleted=False,
                singleEvents=True,
                maxResults=self.page_size,
                orderBy="startTime",
                pageToken=page_token,
            ),
        )
        events = []
        for item in payload.get("items", []):
            try:
                events.append(
                    CalendarEvent(
                        id=item["id"],
                        title=item.get("summary"),
                        description=item.get("description"),
                        start=item.get("start") or {},
                    )
                )
            except (KeyError, ValidationError) as e:
                # Cancelled instances can come back without a start
                logger.warning(
                    "event_payload_unusable",
                    calendar_id=calendar_id,
                    event_id=item.get("id"),
                    error=str(e),
                )
        return EventPage(items=events, next_page_token=payload.get("nextPageToken"))
