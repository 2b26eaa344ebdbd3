"""
Lesson booking notifications: SMS, live calendar events and .ics invites.

Public API:
    NotificationDispatcher.dispatch(event, job) - Sync one booking across channels
    notify_booking(dispatcher, event, booking_id) - Load, dispatch, manage reminders
    format_ics(event) / build_lesson_ics(job, ...) - Portable calendar invites
    init_scheduler(dispatcher) / shutdown_scheduler() - Reminder job scheduler
"""

from .actions import notify_booking
from .dispatcher import NotificationDispatcher
from .ics import ICSEvent, build_lesson_ics, format_ics
from .scheduler import (
    cancel_lesson_reminders,
    init_scheduler,
    schedule_lesson_reminder,
    shutdown_scheduler,
)
from .types import ChannelResult, DispatchResult, NotificationJob

__all__ = [
    # Dispatch
    "NotificationDispatcher",
    "notify_booking",
    # Data
    "ChannelResult",
    "DispatchResult",
    "NotificationJob",
    # Calendar attachments
    "ICSEvent",
    "format_ics",
    "build_lesson_ics",
    # Scheduling
    "init_scheduler",
    "shutdown_scheduler",
    "schedule_lesson_reminder",
    "cancel_lesson_reminders",
]
