"""Twilio SMS delivery channel."""

import logging
import re
from datetime import datetime
from typing import Protocol

import sentry_sdk
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from facility.config import Settings
from facility.enums import Channel
from facility.errors import ChannelUnavailable, ProviderError
from facility.notifications.retry import call_provider
from facility.notifications.templates import get_message
from facility.notifications.types import ChannelResult
from facility.timezone import (
    format_date_in_timezone,
    format_short_date_in_timezone,
    format_time_in_timezone,
)

logger = logging.getLogger(__name__)

NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str, default_country_code: str = "1") -> str:
    """
    Normalize a phone number to E.164.

    Numbers already starting with "+" pass through unchanged; anything else
    has non-digits stripped and the default country code prepended.

    Raises:
        ValueError: If the number contains no digits
    """
    phone = (phone or "").strip()
    if phone.startswith("+"):
        return phone

    digits = NON_DIGITS.sub("", phone)
    if not digits:
        raise ValueError(f"Invalid phone number: {phone!r}")
    return f"+{default_country_code}{digits}"


class SMSProvider(Protocol):
    """The one SMS operation the channel needs."""

    def create_message(self, to: str, body: str) -> str:
        """Send body to an E.164 number; return the provider message id."""
        ...


class TwilioSMSProvider:
    """SMSProvider backed by the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self._client = Client(account_sid, auth_token)
        self.from_number = from_number

    def create_message(self, to: str, body: str) -> str:
        message = self._client.messages.create(
            body=body,
            from_=self.from_number,
            to=to,
        )
        return message.sid


class NullSMSProvider:
    """Stand-in when Twilio credentials are absent. Every send is unavailable."""

    def create_message(self, to: str, body: str) -> str:
        raise ChannelUnavailable(Channel.sms.value, "Twilio not configured")


def build_sms_provider(settings: Settings) -> SMSProvider:
    """Pick the SMS provider once at startup."""
    if not settings.sms_configured:
        logger.warning("Twilio credentials missing - SMS functionality disabled")
        return NullSMSProvider()
    return TwilioSMSProvider(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_phone_number,
    )


def _is_retryable_twilio_error(exception: BaseException) -> bool:
    """
    Retry only Twilio error responses for rate limits and server errors.

    Timeouts and network failures leave it unknown whether the message went
    out, and Twilio has no idempotency key, so those are not retried.
    """
    if isinstance(exception, TwilioRestException):
        return exception.status == 429 or exception.status >= 500
    return False


class SMSChannel:
    """
    Sends templated text messages.

    Never raises for provider problems: an unconfigured provider yields a
    skipped ChannelResult, a failed send yields a failed one.
    """

    def __init__(
        self,
        provider: SMSProvider,
        *,
        default_country_code: str = "1",
        tz_name: str = "America/New_York",
        facility_name: str = "Double C Ranch",
        portal_url: str = "memberdoublecranchllc.com",
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
    ):
        self.provider = provider
        self.default_country_code = default_country_code
        self.tz_name = tz_name
        self.facility_name = facility_name
        self.portal_url = portal_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    @classmethod
    def from_settings(cls, settings: Settings, provider: SMSProvider | None = None):
        return cls(
            provider or build_sms_provider(settings),
            default_country_code=settings.sms_default_country_code,
            tz_name=settings.facility_timezone,
            facility_name=settings.facility_name,
            portal_url=settings.portal_url,
            timeout=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
            retry_backoff=settings.provider_retry_backoff_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return not isinstance(self.provider, NullSMSProvider)

    async def send(self, to_phone: str, body: str) -> ChannelResult:
        """
        Send an SMS.

        Args:
            to_phone: Recipient number, E.164 or local digits
            body: Message text

        Returns:
            ChannelResult with the Twilio message SID on success
        """
        if not self.is_configured:
            return ChannelResult.skip(Channel.sms, "Twilio not configured")

        try:
            to_number = normalize_phone(to_phone, self.default_country_code)
        except ValueError as e:
            logger.warning(f"Not sending SMS: {e}")
            return ChannelResult.failed(Channel.sms, str(e))

        try:
            sid = await call_provider(
                self.provider.create_message,
                to_number,
                body,
                operation="sms.send",
                timeout=self.timeout,
                max_retries=self.max_retries,
                backoff=self.retry_backoff,
                retryable=_is_retryable_twilio_error,
            )
        except ChannelUnavailable as e:
            logger.info(f"SMS to {to_number} skipped: {e}")
            return ChannelResult.skip(Channel.sms, str(e))
        except ProviderError as e:
            logger.error(f"Failed to send SMS to {to_number}: {e}")
            sentry_sdk.capture_exception(e)
            return ChannelResult.failed(Channel.sms, str(e))

        logger.info(f"SMS sent to {to_number} (SID: {sid})")
        return ChannelResult.ok(Channel.sms, sid)

    def build_lesson_reminder(
        self,
        *,
        student_name: str,
        lesson_start: datetime,
        lesson_type: str,
        instructor: str | None = None,
        location: str | None = None,
    ) -> str:
        details = ""
        if instructor:
            details += get_message(
                "lesson_reminder", "instructor", {"instructor": instructor}
            )
        if location:
            details += get_message("lesson_reminder", "location", {"location": location})

        return get_message(
            "lesson_reminder",
            "sms",
            {
                "name": student_name,
                "lesson_type": lesson_type,
                "date": format_date_in_timezone(lesson_start, self.tz_name),
                "time": format_time_in_timezone(lesson_start, self.tz_name),
                "details": details,
                "facility_name": self.facility_name,
            },
        )

    def build_contract_reminder(
        self,
        *,
        member_name: str,
        contract_name: str,
        due_date: datetime,
    ) -> str:
        return get_message(
            "contract_reminder",
            "sms",
            {
                "name": member_name,
                "contract_name": contract_name,
                "due_date": format_short_date_in_timezone(due_date, self.tz_name),
                "portal_url": self.portal_url,
                "facility_name": self.facility_name,
            },
        )

    def build_booking_confirmation(
        self,
        *,
        student_name: str,
        lesson_start: datetime,
        lesson_type: str,
    ) -> str:
        return get_message(
            "booking_confirmation",
            "sms",
            {
                "name": student_name,
                "lesson_type": lesson_type,
                "date": format_date_in_timezone(lesson_start, self.tz_name),
                "time": format_time_in_timezone(lesson_start, self.tz_name),
                "facility_name": self.facility_name,
            },
        )

    async def send_lesson_reminder(
        self,
        *,
        student_name: str,
        student_phone: str,
        lesson_start: datetime,
        lesson_type: str,
        instructor: str | None = None,
        location: str | None = None,
    ) -> ChannelResult:
        body = self.build_lesson_reminder(
            student_name=student_name,
            lesson_start=lesson_start,
            lesson_type=lesson_type,
            instructor=instructor,
            location=location,
        )
        return await self.send(student_phone, body)

    async def send_contract_reminder(
        self,
        *,
        member_name: str,
        member_phone: str,
        contract_name: str,
        due_date: datetime,
    ) -> ChannelResult:
        body = self.build_contract_reminder(
            member_name=member_name,
            contract_name=contract_name,
            due_date=due_date,
        )
        return await self.send(member_phone, body)

    async def send_booking_confirmation(
        self,
        *,
        student_name: str,
        student_phone: str,
        lesson_start: datetime,
        lesson_type: str,
    ) -> ChannelResult:
        body = self.build_booking_confirmation(
            student_name=student_name,
            lesson_start=lesson_start,
            lesson_type=lesson_type,
        )
        return await self.send(student_phone, body)
