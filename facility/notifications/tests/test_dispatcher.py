"""Tests for the notification dispatcher."""

import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from facility.enums import Channel, LifecycleEvent
from facility.notifications.channels.calendar import (
    CalendarChannel,
    NullCalendarProvider,
)
from facility.notifications.channels.sms import NullSMSProvider, SMSChannel
from facility.notifications.dispatcher import NotificationDispatcher
from facility.notifications.types import NotificationJob

START = datetime(2025, 6, 1, 14, 0, tzinfo=timezone.utc)
END = datetime(2025, 6, 1, 15, 0, tzinfo=timezone.utc)


class FakeCalendarProvider:
    def __init__(self, fail: bool = False, delay: float = 0):
        self.calls = []
        self.fail = fail
        self.delay = delay

    def _run(self):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise ConnectionError("calendar down")

    def insert_event(self, body):
        self.calls.append(("insert", body))
        self._run()
        return {"id": "evt_new"}

    def patch_event(self, event_id, body):
        self.calls.append(("patch", event_id, body))
        self._run()
        return {"id": event_id}

    def delete_event(self, event_id):
        self.calls.append(("delete", event_id))
        self._run()


class FakeSMSProvider:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def create_message(self, to, body):
        self.sent.append((to, body))
        if self.fail:
            raise ValueError("Invalid 'To' number")
        return "SM001"


def _job(**overrides) -> NotificationJob:
    fields = dict(
        booking_id=42,
        lesson_summary="Private Riding Lesson",
        start_time=START,
        end_time=END,
        recipient_email="student@example.com",
        recipient_phone="5551234567",
        recipient_name="Jane",
        lesson_type="private",
        instructor_name="Casey",
    )
    fields.update(overrides)
    return NotificationJob(**fields)


def _dispatcher(calendar_provider=None, sms_provider=None, store=None, timeout=1.0):
    calendar = CalendarChannel(
        calendar_provider if calendar_provider is not None else FakeCalendarProvider(),
        timeout=timeout,
        max_retries=0,
        retry_backoff=0,
    )
    sms = SMSChannel(
        sms_provider if sms_provider is not None else FakeSMSProvider(),
        timeout=timeout,
        max_retries=0,
        retry_backoff=0,
    )
    return NotificationDispatcher(
        sms,
        calendar,
        store or AsyncMock(),
        organizer_email="support@doublecranchllc.com",
        facility_name="Double C Ranch",
        ics_uid_domain="doublecranchllc.com",
    )


@pytest.fixture(autouse=True)
def quiet_sentry():
    with patch("facility.notifications.dispatcher.sentry_sdk"), patch(
        "facility.notifications.channels.sms.sentry_sdk"
    ), patch("facility.notifications.channels.calendar.sentry_sdk"):
        yield


class TestCreated:
    @pytest.mark.asyncio
    async def test_creates_event_sends_confirmation_and_builds_invite(self):
        calendar, sms, store = FakeCalendarProvider(), FakeSMSProvider(), AsyncMock()
        job = _job()

        result = await _dispatcher(calendar, sms, store).dispatch(
            LifecycleEvent.created, job
        )

        assert [r.channel for r in result.results] == [
            Channel.calendar,
            Channel.sms,
            Channel.ics,
        ]
        assert all(r.success for r in result.results)
        assert result.for_channel(Channel.calendar).provider_reference == "evt_new"
        assert result.for_channel(Channel.sms).provider_reference == "SM001"
        assert "BEGIN:VCALENDAR" in result.ics_document
        assert "SEQUENCE:0" in result.ics_document
        store.assert_awaited_once_with(42, "evt_new")
        assert job.external_calendar_event_id == "evt_new"
        assert "confirmed" in sms.sent[0][1]

    @pytest.mark.asyncio
    async def test_calendar_timeout_does_not_block_sms(self):
        calendar = FakeCalendarProvider(delay=0.5)
        sms, store = FakeSMSProvider(), AsyncMock()

        result = await _dispatcher(calendar, sms, store, timeout=0.05).dispatch(
            LifecycleEvent.created, _job()
        )

        assert len(result.results) == 3
        assert len({r.channel for r in result.results}) == 3
        assert result.for_channel(Channel.calendar).is_failure
        assert result.for_channel(Channel.sms).success
        assert result.for_channel(Channel.ics).success
        assert result.ics_document is not None
        assert len(sms.sent) == 1
        store.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_event_id_stored_even_when_sms_fails(self):
        store = AsyncMock()

        result = await _dispatcher(
            FakeCalendarProvider(), FakeSMSProvider(fail=True), store
        ).dispatch(LifecycleEvent.created, _job())

        assert result.for_channel(Channel.sms).is_failure
        assert result.for_channel(Channel.calendar).success
        store.assert_awaited_once_with(42, "evt_new")

    @pytest.mark.asyncio
    async def test_unconfigured_providers_still_produce_invite(self):
        result = await _dispatcher(NullCalendarProvider(), NullSMSProvider()).dispatch(
            LifecycleEvent.created, _job()
        )

        assert result.for_channel(Channel.calendar).skipped
        assert result.for_channel(Channel.sms).skipped
        assert result.for_channel(Channel.ics).success
        assert result.failures == []
        assert result.ics_document is not None

    @pytest.mark.asyncio
    async def test_existing_event_is_updated_not_duplicated(self):
        calendar, store = FakeCalendarProvider(), AsyncMock()

        result = await _dispatcher(calendar, store=store).dispatch(
            LifecycleEvent.created, _job(external_calendar_event_id="evt_old")
        )

        assert [c[0] for c in calendar.calls] == ["patch"]
        assert result.for_channel(Channel.calendar).provider_reference == "evt_old"
        store.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_save_reports_created_event(self):
        store = AsyncMock(side_effect=RuntimeError("db down"))

        result = await _dispatcher(store=store).dispatch(LifecycleEvent.created, _job())

        calendar_result = result.for_channel(Channel.calendar)
        assert calendar_result.is_failure
        assert calendar_result.provider_reference == "evt_new"

    @pytest.mark.asyncio
    async def test_no_phone_skips_sms(self):
        sms = FakeSMSProvider()

        result = await _dispatcher(sms_provider=sms).dispatch(
            LifecycleEvent.created, _job(recipient_phone=None)
        )

        assert result.for_channel(Channel.sms).skipped
        assert sms.sent == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained_to_one_channel(self):
        dispatcher = _dispatcher()
        dispatcher.sms.send_booking_confirmation = AsyncMock(
            side_effect=RuntimeError("boom")
        )

        result = await dispatcher.dispatch(LifecycleEvent.created, _job())

        assert result.for_channel(Channel.sms).is_failure
        assert "boom" in result.for_channel(Channel.sms).error
        assert result.for_channel(Channel.calendar).success
        assert len(result.results) == 3


class TestRescheduled:
    @pytest.mark.asyncio
    async def test_updates_existing_event_and_reissues_invite(self):
        calendar, sms = FakeCalendarProvider(), FakeSMSProvider()

        result = await _dispatcher(calendar, sms).dispatch(
            LifecycleEvent.rescheduled, _job(external_calendar_event_id="evt_1")
        )

        assert result.event == LifecycleEvent.rescheduled
        assert calendar.calls[0][:2] == ("patch", "evt_1")
        assert set(calendar.calls[0][2]) == {"summary", "location", "start", "end"}
        assert [r.channel for r in result.results] == [Channel.calendar, Channel.ics]
        assert "SEQUENCE:1" in result.ics_document
        assert sms.sent == []

    @pytest.mark.asyncio
    async def test_without_event_falls_back_to_create(self):
        calendar, sms, store = FakeCalendarProvider(), FakeSMSProvider(), AsyncMock()

        result = await _dispatcher(calendar, sms, store).dispatch(
            LifecycleEvent.rescheduled, _job()
        )

        assert [c[0] for c in calendar.calls] == ["insert"]
        assert len(sms.sent) == 1
        assert result.for_channel(Channel.ics).success
        store.assert_awaited_once_with(42, "evt_new")

    @pytest.mark.asyncio
    async def test_update_failure_keeps_event_id(self):
        job = _job(external_calendar_event_id="evt_1")

        result = await _dispatcher(FakeCalendarProvider(fail=True)).dispatch(
            LifecycleEvent.rescheduled, job
        )

        assert result.for_channel(Channel.calendar).is_failure
        assert job.external_calendar_event_id == "evt_1"


class TestCancelled:
    @pytest.mark.asyncio
    async def test_no_event_id_makes_no_provider_calls(self):
        calendar, store = FakeCalendarProvider(), AsyncMock()

        result = await _dispatcher(calendar, store=store).dispatch(
            LifecycleEvent.cancelled, _job()
        )

        assert calendar.calls == []
        assert len(result.results) == 1
        calendar_result = result.for_channel(Channel.calendar)
        assert calendar_result.skipped
        assert not calendar_result.is_failure
        assert result.failures == []
        store.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deletes_event_and_clears_id(self):
        calendar, store = FakeCalendarProvider(), AsyncMock()
        job = _job(external_calendar_event_id="evt_1")

        result = await _dispatcher(calendar, store=store).dispatch(
            LifecycleEvent.cancelled, job
        )

        assert calendar.calls == [("delete", "evt_1")]
        assert result.for_channel(Channel.calendar).success
        assert result.ics_document is None
        store.assert_awaited_once_with(42, None)
        assert job.external_calendar_event_id is None

    @pytest.mark.asyncio
    async def test_failed_delete_still_clears_id(self):
        store = AsyncMock()
        job = _job(external_calendar_event_id="evt_1")

        result = await _dispatcher(FakeCalendarProvider(fail=True), store=store).dispatch(
            LifecycleEvent.cancelled, job
        )

        calendar_result = result.for_channel(Channel.calendar)
        assert calendar_result.is_failure
        assert calendar_result.provider_reference == "evt_1"
        store.assert_awaited_once_with(42, None)
        assert job.external_calendar_event_id is None

    @pytest.mark.asyncio
    async def test_unconfigured_calendar_clears_id(self):
        store = AsyncMock()

        result = await _dispatcher(NullCalendarProvider(), store=store).dispatch(
            LifecycleEvent.cancelled, _job(external_calendar_event_id="evt_1")
        )

        assert result.for_channel(Channel.calendar).skipped
        store.assert_awaited_once_with(42, None)

    @pytest.mark.asyncio
    async def test_clear_failure_is_reported(self):
        store = AsyncMock(side_effect=RuntimeError("db down"))

        result = await _dispatcher(store=store).dispatch(
            LifecycleEvent.cancelled, _job(external_calendar_event_id="evt_1")
        )

        assert result.for_channel(Channel.calendar).is_failure


class TestReminderDue:
    @pytest.mark.asyncio
    async def test_sends_sms_only(self):
        calendar, sms = FakeCalendarProvider(), FakeSMSProvider()

        result = await _dispatcher(calendar, sms).dispatch(
            LifecycleEvent.reminder_due, _job(location="Main Arena")
        )

        assert [r.channel for r in result.results] == [Channel.sms]
        assert calendar.calls == []
        assert sms.sent[0][0] == "+15551234567"
        assert "Instructor: Casey." in sms.sent[0][1]
        assert "Location: Main Arena." in sms.sent[0][1]

    @pytest.mark.asyncio
    async def test_accepts_string_event(self):
        result = await _dispatcher().dispatch("reminder-due", _job())
        assert result.event == LifecycleEvent.reminder_due

    @pytest.mark.asyncio
    async def test_no_phone_is_skipped(self):
        result = await _dispatcher().dispatch(
            LifecycleEvent.reminder_due, _job(recipient_phone=None)
        )
        assert result.for_channel(Channel.sms).skipped

    @pytest.mark.asyncio
    async def test_to_dict_summarizes_channels(self):
        result = await _dispatcher().dispatch(LifecycleEvent.reminder_due, _job())
        data = result.to_dict()
        assert data["event"] == "reminder-due"
        assert data["booking_id"] == 42
        assert data["has_ics_attachment"] is False
        assert data["results"][0]["channel"] == "sms"
