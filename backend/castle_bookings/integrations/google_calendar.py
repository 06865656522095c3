"""Calendar clients: the narrow interface the core depends on plus two backends."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, time, timedelta
from time import monotonic
from typing import Any, Protocol
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx
from jose import jwt

from castle_bookings.core.settings import CalendarSettings, get_calendar_settings

logger = logging.getLogger(__name__)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
BOOKING_COLOR_ID = "10"
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_GONE_STATUS = {404, 410}


class CalendarClientError(RuntimeError):
    """Raised when the calendar provider cannot complete a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

    @property
    def not_found(self) -> bool:
        return self.status_code in _GONE_STATUS


@dataclass(slots=True)
class CalendarEvent:
    """A calendar event as seen by the booking core."""

    id: str
    summary: str = ""
    description: str = ""
    location: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    status: str = "confirmed"
    updated: datetime | None = None
    attendees: list[str] = field(default_factory=list)

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @classmethod
    def from_api(cls, payload: dict[str, Any], tz: ZoneInfo) -> "CalendarEvent":
        start, all_day = _parse_event_time(payload.get("start") or {}, tz)
        end, _ = _parse_event_time(payload.get("end") or {}, tz)
        updated_raw = payload.get("updated")
        return cls(
            id=str(payload.get("id", "")),
            summary=payload.get("summary") or "",
            description=payload.get("description") or "",
            location=payload.get("location"),
            start=start,
            end=end,
            all_day=all_day,
            status=payload.get("status") or "confirmed",
            updated=datetime.fromisoformat(updated_raw) if updated_raw else None,
            attendees=[
                attendee["email"]
                for attendee in payload.get("attendees") or []
                if attendee.get("email")
            ],
        )


@dataclass(slots=True)
class CalendarEventData:
    """Fields written when creating or replacing an event."""

    summary: str
    description: str
    start: datetime
    end: datetime
    location: str | None = None
    attendee_email: str | None = None
    attendee_name: str | None = None
    color_id: str = BOOKING_COLOR_ID

    def to_api(self, time_zone: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": self.start.isoformat(), "timeZone": time_zone},
            "end": {"dateTime": self.end.isoformat(), "timeZone": time_zone},
            "colorId": self.color_id,
            "transparency": "opaque",
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 60},
                ],
            },
        }
        if self.location:
            body["location"] = self.location
        if self.attendee_email:
            body["attendees"] = [
                {
                    "email": self.attendee_email,
                    "displayName": self.attendee_name or self.attendee_email,
                    "responseStatus": "needsAction",
                }
            ]
        return body


def _parse_event_time(
    payload: dict[str, Any], tz: ZoneInfo
) -> tuple[datetime | None, bool]:
    if payload.get("dateTime"):
        value = datetime.fromisoformat(payload["dateTime"])
        if value.tzinfo is None:
            value = value.replace(tzinfo=tz)
        return value, False
    if payload.get("date"):
        day = date.fromisoformat(payload["date"])
        return datetime.combine(day, time(0, 0), tzinfo=tz), True
    return None, False


class CalendarClient(Protocol):
    """Operations the booking core performs against a calendar."""

    async def get_event(self, event_id: str) -> CalendarEvent | None: ...

    async def create_event(self, data: CalendarEventData) -> CalendarEvent: ...

    async def update_event(self, event_id: str, data: CalendarEventData) -> CalendarEvent: ...

    async def delete_event(self, event_id: str) -> bool: ...

    async def get_events_in_range(
        self, start: datetime, end: datetime
    ) -> list[CalendarEvent]: ...

    async def test_connection(self) -> bool: ...

    async def aclose(self) -> None: ...


class GoogleCalendarClient:
    """Google Calendar v3 REST client authenticated as a service account."""

    def __init__(
        self,
        settings: CalendarSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not settings.service_account_email or not settings.private_key:
            raise ValueError(
                "GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY are required "
                "for the google calendar backend"
            )
        self._settings = settings
        self._tz = ZoneInfo(settings.time_zone)
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds)
        )
        self._owns_client = http_client is None
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def _events_path(self) -> str:
        return f"/calendars/{quote(self._settings.calendar_id, safe='')}/events"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and monotonic() < self._token_expires_at - 60:
                return self._token
            issued_at = int(datetime.now(UTC).timestamp())
            claims = {
                "iss": self._settings.service_account_email,
                "scope": CALENDAR_SCOPE,
                "aud": TOKEN_URL,
                "iat": issued_at,
                "exp": issued_at + 3600,
            }
            assertion = jwt.encode(claims, self._settings.private_key, algorithm="RS256")
            try:
                response = await self._client.post(
                    TOKEN_URL,
                    data={
                        "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                        "assertion": assertion,
                    },
                )
            except httpx.HTTPError as exc:
                raise CalendarClientError(
                    "Failed to reach the token endpoint", retryable=True
                ) from exc
            if response.status_code != 200:
                raise CalendarClientError(
                    "Service account token exchange failed",
                    status_code=response.status_code,
                    retryable=response.status_code in _RETRYABLE_STATUS,
                )
            payload = response.json()
            self._token = payload["access_token"]
            self._token_expires_at = monotonic() + int(
                payload.get("expires_in", 3600)
            )
            return self._token

    def _backoff(self, attempt: int) -> float:
        return min(self._base_delay * (2**attempt), self._max_delay)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{CALENDAR_API_BASE}{path}"
        last_error: CalendarClientError | None = None
        for attempt in range(self._settings.max_attempts):
            token = await self._access_token()
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.TransportError as exc:
                last_error = CalendarClientError(
                    f"Calendar request failed: {exc.__class__.__name__}", retryable=True
                )
            else:
                if response.status_code < 300:
                    return response
                if response.status_code == 401:
                    self._token = None
                last_error = CalendarClientError(
                    f"Calendar API returned {response.status_code} for {method} {path}",
                    status_code=response.status_code,
                    retryable=response.status_code in _RETRYABLE_STATUS
                    or response.status_code == 401,
                )
            if not last_error.retryable or attempt + 1 >= self._settings.max_attempts:
                break
            delay = self._backoff(attempt)
            logger.warning(
                "Calendar %s %s failed (attempt %s/%s), retrying in %.1fs",
                method,
                path,
                attempt + 1,
                self._settings.max_attempts,
                delay,
            )
            await self._sleep(delay)
        assert last_error is not None
        raise last_error

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        try:
            response = await self._request("GET", f"{self._events_path}/{quote(event_id, safe='')}")
        except CalendarClientError as exc:
            if exc.not_found:
                return None
            raise
        return CalendarEvent.from_api(response.json(), self._tz)

    async def create_event(self, data: CalendarEventData) -> CalendarEvent:
        response = await self._request(
            "POST", self._events_path, json=data.to_api(self._settings.time_zone)
        )
        event = CalendarEvent.from_api(response.json(), self._tz)
        logger.info("Created calendar event %s", event.id)
        return event

    async def update_event(self, event_id: str, data: CalendarEventData) -> CalendarEvent:
        response = await self._request(
            "PUT",
            f"{self._events_path}/{quote(event_id, safe='')}",
            json=data.to_api(self._settings.time_zone),
        )
        return CalendarEvent.from_api(response.json(), self._tz)

    async def delete_event(self, event_id: str) -> bool:
        """Delete an event. Returns ``False`` when it was already gone."""
        try:
            await self._request("DELETE", f"{self._events_path}/{quote(event_id, safe='')}")
        except CalendarClientError as exc:
            if exc.not_found:
                logger.info("Calendar event %s already deleted", event_id)
                return False
            raise
        return True

    async def get_events_in_range(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        params: dict[str, Any] = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250,
        }
        events: list[CalendarEvent] = []
        while True:
            response = await self._request("GET", self._events_path, params=params)
            payload = response.json()
            events.extend(
                CalendarEvent.from_api(item, self._tz) for item in payload.get("items", [])
            )
            page_token = payload.get("nextPageToken")
            if not page_token:
                return events
            params["pageToken"] = page_token

    async def test_connection(self) -> bool:
        try:
            await self._request(
                "GET", f"/calendars/{quote(self._settings.calendar_id, safe='')}"
            )
        except CalendarClientError:
            logger.exception("Calendar connection test failed")
            return False
        return True


class InMemoryCalendarClient:
    """Process-local calendar used for local development and tests."""

    def __init__(self, *, time_zone: str = "Europe/London") -> None:
        self._tz = ZoneInfo(time_zone)
        self.events: dict[str, CalendarEvent] = {}

    async def aclose(self) -> None:
        return None

    def _build(self, event_id: str, data: CalendarEventData) -> CalendarEvent:
        return CalendarEvent(
            id=event_id,
            summary=data.summary,
            description=data.description,
            location=data.location,
            start=data.start,
            end=data.end,
            updated=datetime.now(UTC),
            attendees=[data.attendee_email] if data.attendee_email else [],
        )

    def put_event(self, event: CalendarEvent) -> CalendarEvent:
        """Store an event as if it had been edited directly in the calendar."""
        self.events[event.id] = event
        return event

    def edit_event(self, event_id: str, **changes: Any) -> CalendarEvent:
        changes.setdefault("updated", datetime.now(UTC))
        event = replace(self.events[event_id], **changes)
        self.events[event_id] = event
        return event

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        return self.events.get(event_id)

    async def create_event(self, data: CalendarEventData) -> CalendarEvent:
        event = self._build(uuid.uuid4().hex, data)
        self.events[event.id] = event
        return event

    async def update_event(self, event_id: str, data: CalendarEventData) -> CalendarEvent:
        if event_id not in self.events:
            raise CalendarClientError(f"Event {event_id} not found", status_code=404)
        event = self._build(event_id, data)
        self.events[event_id] = event
        return event

    async def delete_event(self, event_id: str) -> bool:
        return self.events.pop(event_id, None) is not None

    async def get_events_in_range(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        matches = [
            event
            for event in self.events.values()
            if not event.is_cancelled
            and event.start is not None
            and event.end is not None
            and event.start < end
            and event.end > start
        ]
        return sorted(matches, key=lambda event: event.start or datetime.min.replace(tzinfo=UTC))

    async def test_connection(self) -> bool:
        return True


def build_calendar_client(settings: CalendarSettings | None = None) -> CalendarClient:
    """Construct the configured calendar backend."""
    settings = settings or get_calendar_settings()
    if settings.backend == "google":
        return GoogleCalendarClient(settings)
    return InMemoryCalendarClient(time_zone=settings.time_zone)


def event_window(event: CalendarEvent, *, day_start: time, day_end: time) -> tuple[datetime, datetime] | None:
    """Occupied window of an event; all-day events occupy the business day."""
    if event.start is None:
        return None
    if event.all_day:
        day = event.start.date()
        return (
            datetime.combine(day, day_start, tzinfo=event.start.tzinfo),
            datetime.combine(day, day_end, tzinfo=event.start.tzinfo),
        )
    end = event.end or event.start + timedelta(hours=1)
    return event.start, end


__all__ = [
    "CalendarClient",
    "CalendarClientError",
    "CalendarEvent",
    "CalendarEventData",
    "GoogleCalendarClient",
    "InMemoryCalendarClient",
    "build_calendar_client",
    "event_window",
]
