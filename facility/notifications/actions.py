"""
High-level notification actions.

Called by business logic (routes, booking flows) when a booking changes.
They load fresh booking data, dispatch to the channels, and keep the
scheduled SMS reminder in step with the lesson time.
"""

import logging
from datetime import timedelta

from facility.enums import LifecycleEvent
from facility.errors import NotFoundError
from facility.notifications.dispatcher import NotificationDispatcher
from facility.notifications.scheduler import (
    cancel_lesson_reminders,
    schedule_lesson_reminder,
)
from facility.notifications.types import DispatchResult

logger = logging.getLogger(__name__)


async def notify_booking(
    dispatcher: NotificationDispatcher,
    event: LifecycleEvent,
    booking_id: int,
    reminder_offset: timedelta = timedelta(hours=24),
) -> DispatchResult:
    """
    Dispatch a lifecycle event for a stored booking.

    Callers should serialize calls per booking id; the channel layer
    does not lock the calendar event id.

    Args:
        dispatcher: Configured dispatcher
        event: What happened to the booking
        booking_id: Booking to notify about
        reminder_offset: How long before the lesson the SMS reminder fires

    Raises:
        NotFoundError: If the booking does not exist
    """
    # Import here to avoid circular imports
    from facility.bookings import get_notification_job

    event = LifecycleEvent(event)
    job = await get_notification_job(booking_id)
    if job is None:
        raise NotFoundError(f"Booking {booking_id} not found")

    result = await dispatcher.dispatch(event, job)

    if event in (LifecycleEvent.created, LifecycleEvent.rescheduled):
        schedule_lesson_reminder(booking_id, job.start_time - reminder_offset)
    elif event == LifecycleEvent.cancelled:
        cancelled = cancel_lesson_reminders(booking_id)
        logger.info(f"Cancelled {cancelled} reminder job(s) for booking {booking_id}")

    return result
