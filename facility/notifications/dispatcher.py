"""
Notification dispatcher - keeps one lesson booking in sync across channels.

Channels (SMS, live calendar event, .ics attachment) are attempted
independently and concurrently; every attempted channel gets exactly one
ChannelResult, and a failure in one never stops or rolls back another.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import sentry_sdk

from facility.enums import Channel, LifecycleEvent
from facility.notifications.channels.calendar import CalendarChannel, CalendarEventData
from facility.notifications.channels.sms import SMSChannel
from facility.notifications.ics import build_lesson_ics
from facility.notifications.types import ChannelResult, DispatchResult, NotificationJob

logger = logging.getLogger(__name__)

# Persists (or clears, with None) the booking's calendar event id
EventIdStore = Callable[[int, str | None], Awaitable[None]]


class NotificationDispatcher:
    """
    Route booking lifecycle events to the SMS, calendar and ICS channels.

    Args:
        sms: SMS channel
        calendar: Live calendar channel
        store_event_id: Writes the calendar event id back onto the booking
        organizer_email: Organizer/contact address for .ics invites
        facility_name: Used in invite text and as the default location
        ics_uid_domain: Suffix for .ics UIDs
    """

    def __init__(
        self,
        sms: SMSChannel,
        calendar: CalendarChannel,
        store_event_id: EventIdStore,
        *,
        organizer_email: str,
        facility_name: str,
        ics_uid_domain: str,
    ):
        self.sms = sms
        self.calendar = calendar
        self.store_event_id = store_event_id
        self.organizer_email = organizer_email
        self.facility_name = facility_name
        self.ics_uid_domain = ics_uid_domain

    async def dispatch(
        self,
        event: LifecycleEvent,
        job: NotificationJob,
    ) -> DispatchResult:
        """
        Notify every relevant channel about a booking lifecycle event.

        Policy:
            created      - calendar create, SMS confirmation, .ics attachment
            rescheduled  - calendar update + .ics; falls back to "created"
                           when the booking has no calendar event yet
            cancelled    - calendar delete, then clear the stored event id
            reminder-due - SMS reminder only

        Returns:
            DispatchResult with one ChannelResult per attempted channel
        """
        event = LifecycleEvent(event)
        result = DispatchResult(event=event, booking_id=job.booking_id)

        if event == LifecycleEvent.rescheduled and not job.external_calendar_event_id:
            logger.info(
                f"Booking {job.booking_id} rescheduled without a calendar event, "
                "treating as created"
            )
            event = LifecycleEvent.created

        steps: list[tuple[Channel, Awaitable[ChannelResult]]] = []
        if event == LifecycleEvent.created:
            steps.append((Channel.calendar, self._sync_calendar_event(job)))
            steps.append((Channel.sms, self._send_confirmation(job)))
            result.ics_document, ics_result = self._build_ics(job, sequence=0)
        elif event == LifecycleEvent.rescheduled:
            steps.append((Channel.calendar, self._sync_calendar_event(job)))
            result.ics_document, ics_result = self._build_ics(job, sequence=1)
        elif event == LifecycleEvent.cancelled:
            steps.append((Channel.calendar, self._delete_calendar_event(job)))
            ics_result = None
        else:
            steps.append((Channel.sms, self._send_reminder(job)))
            ics_result = None

        # Join, not race: wait for every channel before returning
        outcomes = await asyncio.gather(
            *(self._guard(channel, step, job) for channel, step in steps)
        )
        result.results.extend(outcomes)
        if ics_result is not None:
            result.results.append(ics_result)

        for r in result.failures:
            logger.warning(
                f"Booking {job.booking_id} {event.value}: {r.channel.value} "
                f"channel failed: {r.error}"
            )
        return result

    async def _guard(
        self,
        channel: Channel,
        step: Awaitable[ChannelResult],
        job: NotificationJob,
    ) -> ChannelResult:
        """Turn any unexpected exception into a failed result for this channel only."""
        try:
            return await step
        except Exception as e:
            logger.exception(
                f"Unexpected error in {channel.value} channel for booking {job.booking_id}"
            )
            sentry_sdk.capture_exception(e)
            return ChannelResult.failed(channel, f"Unexpected error: {e}")

    def _event_data(self, job: NotificationJob) -> CalendarEventData:
        description = f"{job.lesson_summary} for {job.recipient_name}"
        if job.instructor_name:
            description += f" with {job.instructor_name}"
        return CalendarEventData(
            summary=job.lesson_summary,
            description=description,
            location=job.location or self.facility_name,
            start_time=job.start_time,
            end_time=job.end_time,
            attendees=job.attendee_emails,
        )

    async def _sync_calendar_event(self, job: NotificationJob) -> ChannelResult:
        """
        Create the booking's event, or update it if one is already linked.

        A live event id is never replaced by creating a second event.
        """
        if not self.calendar.is_configured:
            return ChannelResult.skip(Channel.calendar, "Google Calendar not configured")

        data = self._event_data(job)

        if job.external_calendar_event_id:
            updated = await self.calendar.update_event(
                job.external_calendar_event_id,
                summary=data.summary,
                location=data.location,
                start_time=data.start_time,
                end_time=data.end_time,
            )
            if updated:
                return ChannelResult.ok(Channel.calendar, job.external_calendar_event_id)
            return ChannelResult.failed(
                Channel.calendar,
                "Failed to update calendar event",
                provider_reference=job.external_calendar_event_id,
            )

        event_id = await self.calendar.create_event(data)
        if not event_id:
            return ChannelResult.failed(Channel.calendar, "Failed to create calendar event")

        job.external_calendar_event_id = event_id
        try:
            await self.store_event_id(job.booking_id, event_id)
        except Exception as e:
            # The event exists; report it so staff can relink it
            logger.exception(
                f"Calendar event {event_id} created but not saved on booking {job.booking_id}"
            )
            sentry_sdk.capture_exception(e)
            return ChannelResult.failed(
                Channel.calendar,
                f"Calendar event created but not saved: {e}",
                provider_reference=event_id,
            )
        return ChannelResult.ok(Channel.calendar, event_id)

    async def _delete_calendar_event(self, job: NotificationJob) -> ChannelResult:
        event_id = job.external_calendar_event_id
        if not event_id:
            return ChannelResult.skip(Channel.calendar, "No calendar event for booking")

        if self.calendar.is_configured:
            deleted = await self.calendar.delete_event(event_id)
            outcome = (
                ChannelResult.ok(Channel.calendar, event_id)
                if deleted
                else ChannelResult.failed(
                    Channel.calendar,
                    "Failed to delete calendar event",
                    provider_reference=event_id,
                )
            )
        else:
            outcome = ChannelResult.skip(Channel.calendar, "Google Calendar not configured")

        # A stale id must never be reused, whether or not the delete worked
        job.external_calendar_event_id = None
        try:
            await self.store_event_id(job.booking_id, None)
        except Exception as e:
            logger.exception(
                f"Could not clear calendar event {event_id} from booking {job.booking_id}"
            )
            sentry_sdk.capture_exception(e)
            return ChannelResult.failed(
                Channel.calendar,
                f"Stale calendar event id not cleared: {e}",
                provider_reference=event_id,
            )
        return outcome

    async def _send_confirmation(self, job: NotificationJob) -> ChannelResult:
        if not job.recipient_phone:
            return ChannelResult.skip(Channel.sms, "No phone number on file")
        return await self.sms.send_booking_confirmation(
            student_name=job.recipient_name,
            student_phone=job.recipient_phone,
            lesson_start=job.start_time,
            lesson_type=job.lesson_type,
        )

    async def _send_reminder(self, job: NotificationJob) -> ChannelResult:
        if not job.recipient_phone:
            return ChannelResult.skip(Channel.sms, "No phone number on file")
        return await self.sms.send_lesson_reminder(
            student_name=job.recipient_name,
            student_phone=job.recipient_phone,
            lesson_start=job.start_time,
            lesson_type=job.lesson_type,
            instructor=job.instructor_name,
            location=job.location,
        )

    def _build_ics(
        self,
        job: NotificationJob,
        sequence: int,
    ) -> tuple[str | None, ChannelResult]:
        try:
            document = build_lesson_ics(
                job,
                organizer_email=self.organizer_email,
                facility_name=self.facility_name,
                domain=self.ics_uid_domain,
                sequence=sequence,
            )
        except Exception as e:
            logger.exception(f"Failed to build .ics for booking {job.booking_id}")
            sentry_sdk.capture_exception(e)
            return None, ChannelResult.failed(Channel.ics, str(e))
        return document, ChannelResult.ok(Channel.ics)
