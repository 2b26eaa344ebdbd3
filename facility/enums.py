"""SQLAlchemy enum definitions for the database schema."""

import enum

from sqlalchemy import Enum as SQLEnum


# =====================================================
# Python Enum Classes
# =====================================================


class CheckInType(str, enum.Enum):
    self_service = "self_service"
    staff_recorded = "staff_recorded"


class CheckInStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class LessonType(str, enum.Enum):
    private = "private"
    group = "group"
    horsemanship = "horsemanship"


class BookingStatus(str, enum.Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"
    rescheduled = "rescheduled"
    completed = "completed"


class LifecycleEvent(str, enum.Enum):
    """Why a booking notification is being dispatched."""

    created = "created"
    rescheduled = "rescheduled"
    cancelled = "cancelled"
    reminder_due = "reminder-due"


class Channel(str, enum.Enum):
    sms = "sms"
    calendar = "calendar"
    ics = "ics"


# =====================================================
# SQLAlchemy Enum Types
# These reference existing PostgreSQL types (create_type=False)
# =====================================================

check_in_type_enum = SQLEnum(
    CheckInType, name="check_in_type", create_type=False, native_enum=True
)
check_in_status_enum = SQLEnum(
    CheckInStatus, name="check_in_status", create_type=False, native_enum=True
)
lesson_type_enum = SQLEnum(
    LessonType, name="lesson_type", create_type=False, native_enum=True
)
booking_status_enum = SQLEnum(
    BookingStatus, name="booking_status", create_type=False, native_enum=True
)
