"""Google Calendar channel: live events for lesson bookings."""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import sentry_sdk
from google.oauth2 import service_account
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from facility.config import Settings
from facility.enums import Channel
from facility.errors import ChannelUnavailable, ProviderError
from facility.notifications.retry import call_provider, is_transient_error
from facility.timezone import to_local

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Attendee-facing reminders on the live event (minutes before start)
REMINDER_OVERRIDES = [
    {"method": "email", "minutes": 24 * 60},
    {"method": "popup", "minutes": 30},
]


@dataclass
class CalendarEventData:
    summary: str
    start_time: datetime
    end_time: datetime
    description: str | None = None
    location: str | None = None
    attendees: list[str] = field(default_factory=list)


class CalendarProvider(Protocol):
    """The event operations the channel needs, keyed by provider event id."""

    def insert_event(self, body: dict) -> dict: ...

    def patch_event(self, event_id: str, body: dict) -> dict: ...

    def delete_event(self, event_id: str) -> None: ...


class GoogleCalendarProvider:
    """
    CalendarProvider backed by the Google Calendar API v3.

    Every mutation uses sendUpdates="all" so attendees get Google's own
    invite, update and cancellation emails.
    """

    def __init__(self, service: Resource, calendar_id: str = "primary"):
        self._service = service
        self.calendar_id = calendar_id

    @classmethod
    def from_credentials(
        cls,
        *,
        credentials_json: str | None = None,
        credentials_file: str | None = None,
        calendar_id: str = "primary",
        subject: str | None = None,
    ) -> "GoogleCalendarProvider":
        """
        Build from a service account.

        Supports credentials from:
        - GOOGLE_CALENDAR_CREDENTIALS_JSON env var (for Railway/Heroku)
        - GOOGLE_CALENDAR_CREDENTIALS_FILE path (for local dev)
        """
        if credentials_json:
            creds = service_account.Credentials.from_service_account_info(
                json.loads(credentials_json),
                scopes=SCOPES,
            )
        else:
            creds = service_account.Credentials.from_service_account_file(
                credentials_file,
                scopes=SCOPES,
            )
        if subject:
            # Domain-wide delegation: act as this calendar owner
            creds = creds.with_subject(subject)

        service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return cls(service, calendar_id)

    def insert_event(self, body: dict) -> dict:
        return (
            self._service.events()
            .insert(calendarId=self.calendar_id, body=body, sendUpdates="all")
            .execute()
        )

    def patch_event(self, event_id: str, body: dict) -> dict:
        return (
            self._service.events()
            .patch(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=body,
                sendUpdates="all",
            )
            .execute()
        )

    def delete_event(self, event_id: str) -> None:
        self._service.events().delete(
            calendarId=self.calendar_id,
            eventId=event_id,
            sendUpdates="all",
        ).execute()


class NullCalendarProvider:
    """Stand-in when calendar credentials are absent."""

    def _unavailable(self):
        raise ChannelUnavailable(Channel.calendar.value, "Google Calendar not configured")

    def insert_event(self, body: dict) -> dict:
        self._unavailable()

    def patch_event(self, event_id: str, body: dict) -> dict:
        self._unavailable()

    def delete_event(self, event_id: str) -> None:
        self._unavailable()


def build_calendar_provider(settings: Settings) -> CalendarProvider:
    """Pick the calendar provider once at startup."""
    if not settings.calendar_configured:
        logger.warning("Google Calendar credentials not configured - sync disabled")
        return NullCalendarProvider()

    try:
        provider = GoogleCalendarProvider.from_credentials(
            credentials_json=settings.google_calendar_credentials_json,
            credentials_file=settings.google_calendar_credentials_file,
            calendar_id=settings.google_calendar_id,
            subject=settings.google_calendar_subject,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Google Calendar service: {e}")
        sentry_sdk.capture_exception(e)
        return NullCalendarProvider()

    logger.info("Google Calendar client initialized")
    return provider


def _is_rate_limit_error(exception: BaseException) -> bool:
    """Check if exception is a Google API rate limit error."""
    if isinstance(exception, HttpError):
        return exception.resp.status == 429
    return False


def new_event_id() -> str:
    """Client-chosen event id. Hex digits are a subset of the base32hex ids Google accepts."""
    return uuid.uuid4().hex


def _is_retryable_calendar_error(exception: BaseException) -> bool:
    if isinstance(exception, HttpError):
        return exception.resp.status == 429 or exception.resp.status >= 500
    return is_transient_error(exception) or isinstance(exception, OSError)


def _log_calendar_error(
    error: ProviderError,
    operation: str,
    context: dict | None = None,
) -> None:
    """
    Log calendar API errors with appropriate severity.

    Rate limits get warning level + specific Sentry event.
    Other errors get error level.
    """
    context = context or {}

    if _is_rate_limit_error(error.cause):
        logger.warning(
            f"Google Calendar rate limit hit during {operation}",
            extra={"operation": operation, **context},
        )
        sentry_sdk.capture_message(
            f"Google Calendar rate limit: {operation}",
            level="warning",
            extras={"operation": operation, **context},
        )
    else:
        logger.error(
            f"Google Calendar API error during {operation}: {error}",
            extra={"operation": operation, **context},
        )
        sentry_sdk.capture_exception(error)


class CalendarChannel:
    """
    Creates, updates and deletes live calendar events.

    Provider failures never propagate: create returns None and update/delete
    return False. is_configured tells callers whether that means "disabled"
    or "failed".
    """

    def __init__(
        self,
        provider: CalendarProvider,
        *,
        tz_name: str = "America/New_York",
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
    ):
        self.provider = provider
        self.tz_name = tz_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    @classmethod
    def from_settings(
        cls, settings: Settings, provider: CalendarProvider | None = None
    ):
        return cls(
            provider or build_calendar_provider(settings),
            tz_name=settings.facility_timezone,
            timeout=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
            retry_backoff=settings.provider_retry_backoff_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return not isinstance(self.provider, NullCalendarProvider)

    def _event_time(self, dt: datetime) -> dict:
        return {
            "dateTime": to_local(dt, self.tz_name).isoformat(),
            "timeZone": self.tz_name,
        }

    def build_event_body(self, data: CalendarEventData) -> dict:
        body: dict[str, Any] = {
            "summary": data.summary,
            "start": self._event_time(data.start_time),
            "end": self._event_time(data.end_time),
            "attendees": [{"email": email} for email in data.attendees],
            "reminders": {"useDefault": False, "overrides": REMINDER_OVERRIDES},
        }
        if data.description:
            body["description"] = data.description
        if data.location:
            body["location"] = data.location
        return body

    async def _call(self, func, *args, operation: str, context: dict):
        """Run a provider call; returns (ok, response). Never raises."""
        try:
            response = await call_provider(
                func,
                *args,
                operation=operation,
                timeout=self.timeout,
                max_retries=self.max_retries,
                backoff=self.retry_backoff,
                retryable=_is_retryable_calendar_error,
            )
        except ChannelUnavailable as e:
            logger.info(f"Skipping {operation}: {e}")
            return False, None
        except ProviderError as e:
            _log_calendar_error(e, operation, context)
            return False, None
        return True, response

    async def create_event(self, data: CalendarEventData) -> str | None:
        """
        Create an event and invite the attendees.

        The event id is chosen here, once, so a retried insert can never
        create a second event: if an attempt that timed out still went
        through, Google answers the retry with 409 for the same id.

        Returns:
            Provider event id, or None if not configured or the call failed
        """
        event_id = new_event_id()
        body = {"id": event_id, **self.build_event_body(data)}
        attempts = 0

        def insert() -> dict:
            nonlocal attempts
            attempts += 1
            try:
                return self.provider.insert_event(body)
            except HttpError as e:
                if e.resp.status == 409 and attempts > 1:
                    logger.info(f"Calendar event {event_id} already created by an earlier attempt")
                    return {"id": event_id}
                raise

        ok, response = await self._call(
            insert,
            operation="calendar.create_event",
            context={"summary": data.summary, "event_id": event_id},
        )
        if not ok:
            return None

        event_id = (response or {}).get("id") or event_id
        logger.info(f"Calendar event created: {event_id}")
        return event_id

    async def update_event(
        self,
        event_id: str,
        *,
        summary: str | None = None,
        description: str | None = None,
        location: str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        attendees: list[str] | None = None,
    ) -> bool:
        """
        Patch only the supplied fields of an existing event.

        Attendees are notified of the change.

        Returns:
            True if updated successfully
        """
        body: dict[str, Any] = {}
        if summary is not None:
            body["summary"] = summary
        if description is not None:
            body["description"] = description
        if location is not None:
            body["location"] = location
        if start_time is not None:
            body["start"] = self._event_time(start_time)
        if end_time is not None:
            body["end"] = self._event_time(end_time)
        if attendees is not None:
            body["attendees"] = [{"email": email} for email in attendees]

        ok, _ = await self._call(
            self.provider.patch_event,
            event_id,
            body,
            operation="calendar.update_event",
            context={"event_id": event_id},
        )
        if ok:
            logger.info(f"Calendar event updated: {event_id}")
        return ok

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete an event; attendees get a cancellation notice.

        Returns:
            True if deleted successfully
        """
        ok, _ = await self._call(
            self.provider.delete_event,
            event_id,
            operation="calendar.delete_event",
            context={"event_id": event_id},
        )
        if ok:
            logger.info(f"Calendar event deleted: {event_id}")
        return ok
