"""Lesson booking lookups used by the notification layer."""

from datetime import datetime, timezone

from sqlalchemy import select, update

from .database import get_connection, get_transaction
from .enums import BookingStatus, LessonType
from .notifications.types import NotificationJob
from .tables import lesson_bookings, lesson_slots, members


def lesson_summary(lesson_type: str) -> str:
    """e.g. "private" -> "Private Riding Lesson"."""
    return f"{lesson_type.capitalize()} Riding Lesson"


async def get_notification_job(
    booking_id: int,
    include_cancelled: bool = True,
) -> NotificationJob | None:
    """
    Load a booking with its slot and member, flattened for notification.

    Args:
        booking_id: Booking to load
        include_cancelled: If False, cancelled bookings return None

    Returns:
        NotificationJob, or None if not found (or cancelled and excluded)
    """
    query = (
        select(
            lesson_bookings.c.booking_id,
            lesson_bookings.c.status,
            lesson_bookings.c.google_calendar_event_id,
            lesson_slots.c.start_time,
            lesson_slots.c.end_time,
            lesson_slots.c.lesson_type,
            lesson_slots.c.instructor_name,
            lesson_slots.c.location,
            members.c.first_name,
            members.c.last_name,
            members.c.email,
            members.c.phone,
        )
        .select_from(
            lesson_bookings.join(
                lesson_slots, lesson_bookings.c.slot_id == lesson_slots.c.slot_id
            ).join(members, lesson_bookings.c.member_id == members.c.member_id)
        )
        .where(lesson_bookings.c.booking_id == booking_id)
    )

    async with get_connection() as conn:
        result = await conn.execute(query)
        row = result.mappings().first()

    if not row:
        return None
    if not include_cancelled and row["status"] == BookingStatus.cancelled:
        return None

    lesson_type = LessonType(row["lesson_type"]).value
    return NotificationJob(
        booking_id=row["booking_id"],
        lesson_summary=lesson_summary(lesson_type),
        start_time=row["start_time"],
        end_time=row["end_time"],
        recipient_email=row["email"],
        recipient_phone=row["phone"],
        recipient_name=row["first_name"],
        lesson_type=lesson_type,
        instructor_name=row["instructor_name"],
        location=row["location"],
        external_calendar_event_id=row["google_calendar_event_id"],
    )


async def set_calendar_event_id(booking_id: int, event_id: str | None) -> None:
    """Store (or clear, with None) the booking's Google Calendar event id."""
    async with get_transaction() as conn:
        await conn.execute(
            update(lesson_bookings)
            .where(lesson_bookings.c.booking_id == booking_id)
            .values(
                google_calendar_event_id=event_id,
                updated_at=datetime.now(timezone.utc),
            )
        )
