"""
Portable calendar attachments (iCalendar, RFC 5545).

The .ics document works in any calendar app and does not depend on the
live calendar integration, so it is the fallback when the provider is down.
"""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from icalendar import Alarm, Calendar, Event, vCalAddress, vText

from facility.notifications.types import NotificationJob

PRODID = "-//Facility Portal//Lesson Booking//EN"
DEFAULT_UID_DOMAIN = "doublecranchllc.com"

# Display alarms embedded in every invite
ALARM_OFFSETS = (timedelta(hours=-24), timedelta(minutes=-30))


@dataclass
class ICSEvent:
    """Input for format_ics."""

    summary: str
    start_time: datetime
    end_time: datetime
    organizer_email: str
    attendees: list[str] = field(default_factory=list)
    description: str | None = None
    location: str | None = None
    organizer_name: str | None = None


def _as_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_event_uid(domain: str = DEFAULT_UID_DOMAIN) -> str:
    """Unique per call: epoch millis + random bits + fixed domain."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}@{domain}"


def format_ics(
    event: ICSEvent,
    *,
    uid: str | None = None,
    now: datetime | None = None,
    sequence: int = 0,
    domain: str = DEFAULT_UID_DOMAIN,
) -> str:
    """
    Render an iCalendar invite (METHOD:REQUEST) for a single event.

    Pure: no I/O. Output is identical for identical inputs once uid and now
    are pinned; otherwise a fresh UID and DTSTAMP are generated.

    Args:
        event: Event data (datetimes may be in any zone; rendered as UTC)
        uid: Reuse an existing UID (e.g. for an updated invite)
        now: DTSTAMP value, defaults to the current time
        sequence: Revision number; bump when reissuing a changed event
        domain: Suffix for generated UIDs

    Returns:
        CRLF-separated iCalendar text
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "REQUEST")  # This makes it an invite, not just an event

    vevent = Event()
    vevent.add("uid", uid or generate_event_uid(domain))
    vevent.add("dtstamp", _as_utc(now or datetime.now(timezone.utc)))
    vevent.add("dtstart", _as_utc(event.start_time))
    vevent.add("dtend", _as_utc(event.end_time))
    vevent.add("summary", event.summary)
    vevent.add("sequence", sequence)

    if event.description:
        vevent.add("description", event.description)
    if event.location:
        vevent.add("location", event.location)

    organizer = vCalAddress(f"mailto:{event.organizer_email}")
    organizer.params["cn"] = vText(event.organizer_name or event.organizer_email)
    vevent.add("organizer", organizer)

    for email in event.attendees:
        attendee = vCalAddress(f"mailto:{email}")
        attendee.params["role"] = vText("REQ-PARTICIPANT")
        attendee.params["rsvp"] = vText("TRUE")
        vevent.add("attendee", attendee, encode=0)

    vevent.add("status", "CONFIRMED")

    for offset in ALARM_OFFSETS:
        alarm = Alarm()
        alarm.add("action", "DISPLAY")
        alarm.add("trigger", offset)
        alarm.add("description", f"Reminder: {event.summary}")
        vevent.add_component(alarm)

    cal.add_component(vevent)
    return cal.to_ical().decode("utf-8")


def build_lesson_ics(
    job: NotificationJob,
    *,
    organizer_email: str,
    facility_name: str,
    domain: str = DEFAULT_UID_DOMAIN,
    sequence: int = 0,
) -> str:
    """Invite attachment for a lesson booking confirmation or reschedule."""
    description = f"Riding lesson at {facility_name}\n\n"
    description += f"Student: {job.recipient_name}\n"
    if job.instructor_name:
        description += f"Instructor: {job.instructor_name}\n"
    description += f"\nFor questions or to reschedule, contact {organizer_email}"

    return format_ics(
        ICSEvent(
            summary=job.lesson_summary,
            description=description,
            location=job.location or facility_name,
            start_time=job.start_time,
            end_time=job.end_time,
            attendees=job.attendee_emails,
            organizer_email=organizer_email,
            organizer_name=facility_name,
        ),
        sequence=sequence,
        domain=domain,
    )
