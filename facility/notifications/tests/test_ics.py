"""Tests for .ics invite generation."""

from datetime import datetime, timedelta, timezone

from icalendar import Calendar

from facility.notifications.ics import ICSEvent, build_lesson_ics, format_ics
from facility.notifications.types import NotificationJob

START = datetime(2025, 6, 1, 14, 0, tzinfo=timezone.utc)
END = datetime(2025, 6, 1, 15, 0, tzinfo=timezone.utc)
STAMP = datetime(2025, 5, 20, 9, 30, tzinfo=timezone.utc)


def _event(**overrides) -> ICSEvent:
    fields = dict(
        summary="Beginner Riding Lesson",
        start_time=START,
        end_time=END,
        organizer_email="support@doublecranchllc.com",
        attendees=["student@example.com"],
    )
    fields.update(overrides)
    return ICSEvent(**fields)


def _lines(document: str) -> list[str]:
    """Unfold continuation lines, then split on CRLF."""
    return document.replace("\r\n ", "").split("\r\n")


def _unescape(value: str) -> str:
    out, i = [], 0
    while i < len(value):
        if value[i] == "\\" and i + 1 < len(value):
            nxt = value[i + 1]
            out.append("\n" if nxt in "nN" else nxt)
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


class TestFormatIcs:
    def test_lesson_invite_has_utc_times_attendee_and_two_alarms(self):
        document = format_ics(_event())
        lines = _lines(document)

        assert "DTSTART:20250601T140000Z" in lines
        assert "DTEND:20250601T150000Z" in lines
        assert any(
            line.startswith("ATTENDEE") and "student@example.com" in line
            for line in lines
        )
        assert document.count("BEGIN:VALARM") == 2

    def test_is_an_invite_request(self):
        lines = _lines(format_ics(_event()))
        assert "METHOD:REQUEST" in lines
        assert "VERSION:2.0" in lines
        assert "STATUS:CONFIRMED" in lines

    def test_lines_are_crlf_separated(self):
        document = format_ics(_event())
        assert document.startswith("BEGIN:VCALENDAR\r\n")
        assert "\n" not in document.replace("\r\n", "")

    def test_alarms_fire_a_day_and_half_an_hour_before(self):
        cal = Calendar.from_ical(format_ics(_event()))
        triggers = sorted(
            alarm.decoded("trigger") for alarm in cal.walk("VALARM")
        )
        assert triggers == [timedelta(hours=-24), timedelta(minutes=-30)]

    def test_attendee_requests_rsvp(self):
        lines = _lines(format_ics(_event()))
        attendee = next(line for line in lines if line.startswith("ATTENDEE"))
        assert "ROLE=REQ-PARTICIPANT" in attendee
        assert "RSVP=TRUE" in attendee
        assert attendee.endswith("mailto:student@example.com")

    def test_non_utc_input_is_rendered_in_utc(self):
        eastern = timezone(timedelta(hours=-4))
        document = format_ics(
            _event(
                start_time=datetime(2025, 6, 1, 10, 0, tzinfo=eastern),
                end_time=datetime(2025, 6, 1, 11, 0, tzinfo=eastern),
            )
        )
        assert "DTSTART:20250601T140000Z" in _lines(document)

    def test_deterministic_with_pinned_uid_and_stamp(self):
        first = format_ics(_event(), uid="fixed@doublecranchllc.com", now=STAMP)
        second = format_ics(_event(), uid="fixed@doublecranchllc.com", now=STAMP)
        assert first == second
        assert "UID:fixed@doublecranchllc.com" in _lines(first)
        assert "DTSTAMP:20250520T093000Z" in _lines(first)

    def test_generated_uids_are_unique(self):
        uids = set()
        for _ in range(20):
            cal = Calendar.from_ical(format_ics(_event()))
            event = cal.walk("VEVENT")[0]
            uids.add(str(event["uid"]))
        assert len(uids) == 20
        assert all(uid.endswith("@doublecranchllc.com") for uid in uids)

    def test_uid_domain_is_configurable(self):
        cal = Calendar.from_ical(format_ics(_event(), domain="example.org"))
        assert str(cal.walk("VEVENT")[0]["uid"]).endswith("@example.org")

    def test_special_characters_are_escaped_and_recoverable(self):
        text = "Bring: boots; helmet, gloves\\spurs\nArrive early"
        lines = _lines(format_ics(_event(description=text, location="Barn; Ring 2")))

        description = next(line for line in lines if line.startswith("DESCRIPTION:"))
        raw = description[len("DESCRIPTION:"):]
        assert "\\;" in raw
        assert "\\," in raw
        assert "\\\\" in raw
        assert "\\n" in raw
        assert _unescape(raw) == text

        location = next(line for line in lines if line.startswith("LOCATION:"))
        assert _unescape(location[len("LOCATION:"):]) == "Barn; Ring 2"

    def test_parses_back_to_same_text(self):
        text = "Line one; two, three\\four\nfive"
        cal = Calendar.from_ical(format_ics(_event(description=text)))
        assert str(cal.walk("VEVENT")[0]["description"]) == text

    def test_sequence_is_written(self):
        lines = _lines(format_ics(_event(), sequence=1))
        assert "SEQUENCE:1" in lines

    def test_no_attendees_means_no_attendee_lines(self):
        lines = _lines(format_ics(_event(attendees=[])))
        assert not any(line.startswith("ATTENDEE") for line in lines)


class TestBuildLessonIcs:
    def _job(self, **overrides) -> NotificationJob:
        fields = dict(
            booking_id=42,
            lesson_summary="Private Riding Lesson",
            start_time=START,
            end_time=END,
            recipient_email="student@example.com",
            recipient_phone="5551234567",
            recipient_name="Jane",
            instructor_name="Casey",
        )
        fields.update(overrides)
        return NotificationJob(**fields)

    def test_location_defaults_to_facility(self):
        document = build_lesson_ics(
            self._job(),
            organizer_email="support@doublecranchllc.com",
            facility_name="Double C Ranch",
        )
        event = Calendar.from_ical(document).walk("VEVENT")[0]
        assert str(event["location"]) == "Double C Ranch"
        assert "Instructor: Casey" in str(event["description"])
        assert "Student: Jane" in str(event["description"])

    def test_missing_email_has_no_attendee(self):
        document = build_lesson_ics(
            self._job(recipient_email=None),
            organizer_email="support@doublecranchllc.com",
            facility_name="Double C Ranch",
        )
        assert "ATTENDEE" not in document
