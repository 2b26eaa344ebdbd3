"""Data passed between the notification channels and the dispatcher."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from facility.enums import Channel, LifecycleEvent


@dataclass
class NotificationJob:
    """
    One lesson booking, flattened for notification.

    Built per dispatch. Only external_calendar_event_id is persisted (onto
    the booking row) after a successful calendar call.
    """

    booking_id: int
    lesson_summary: str
    start_time: datetime
    end_time: datetime
    recipient_email: str | None
    recipient_phone: str | None
    recipient_name: str
    lesson_type: str = "riding"
    instructor_name: str | None = None
    location: str | None = None
    external_calendar_event_id: str | None = None

    @property
    def attendee_emails(self) -> list[str]:
        return [self.recipient_email] if self.recipient_email else []


@dataclass
class ChannelResult:
    """
    Outcome of one channel attempt.

    A skipped result (provider unconfigured, nothing to do) is not a failure.
    """

    channel: Channel
    success: bool
    provider_reference: str | None = None
    error: str | None = None
    skipped: bool = False

    @classmethod
    def ok(cls, channel: Channel, provider_reference: str | None = None):
        return cls(channel=channel, success=True, provider_reference=provider_reference)

    @classmethod
    def failed(cls, channel: Channel, error: str, provider_reference: str | None = None):
        return cls(
            channel=channel,
            success=False,
            provider_reference=provider_reference,
            error=error,
        )

    @classmethod
    def skip(cls, channel: Channel, reason: str):
        return cls(channel=channel, success=False, error=reason, skipped=True)

    @property
    def is_failure(self) -> bool:
        return not self.success and not self.skipped

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "skipped": self.skipped,
            "provider_reference": self.provider_reference,
            "error": self.error,
        }


@dataclass
class DispatchResult:
    """Per-channel results of one dispatch; never all-or-nothing."""

    event: LifecycleEvent
    booking_id: int
    results: list[ChannelResult] = field(default_factory=list)
    ics_document: str | None = None

    def for_channel(self, channel: Channel) -> ChannelResult | None:
        return next((r for r in self.results if r.channel == channel), None)

    @property
    def failures(self) -> list[ChannelResult]:
        return [r for r in self.results if r.is_failure]

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.value,
            "booking_id": self.booking_id,
            "results": [r.to_dict() for r in self.results],
            "has_ics_attachment": self.ics_document is not None,
        }
