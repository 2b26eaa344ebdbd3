"""SQLAlchemy Core table definitions for the database schema."""

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

from .enums import (
    booking_status_enum,
    check_in_status_enum,
    check_in_type_enum,
    lesson_type_enum,
)

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. MEMBERS
# =====================================================
# Profile CRUD lives elsewhere; the core only reads names/contact details
# and owns the check-in token hash.
members = Table(
    "members",
    metadata,
    Column("member_id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),  # Login account (parent or member), if any
    Column("first_name", Text, nullable=False),
    Column("last_name", Text),
    Column("email", Text),
    Column("phone", Text),
    Column("check_in_token_hash", Text, unique=True),  # sha256 hex, never the token
    Column("check_in_token_issued_at", TIMESTAMP(timezone=True)),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_members_user_id", "user_id"),
)


# =====================================================
# 2. CHECK_INS
# =====================================================
check_ins = Table(
    "check_ins",
    metadata,
    Column("check_in_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "member_id",
        Integer,
        ForeignKey("members.member_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("check_in_type", check_in_type_enum, nullable=False),
    Column("program", Text, nullable=False),
    Column(
        "checked_in_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column("notes", Text),
    Column("status", check_in_status_enum, nullable=False, server_default="pending"),
    Column("rejection_reason", Text),  # Only set when status = rejected
    Column("recorded_by", Integer),  # Staff user for staff-recorded entries
    Column("adjudicated_by", Integer),  # Staff user who approved/rejected
    Column("adjudicated_at", TIMESTAMP(timezone=True)),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_check_ins_member_id", "member_id"),
    Index("idx_check_ins_status_checked_in_at", "status", "checked_in_at"),
)


# =====================================================
# 3. LESSON_SLOTS
# =====================================================
lesson_slots = Table(
    "lesson_slots",
    metadata,
    Column("slot_id", Integer, primary_key=True, autoincrement=True),
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("lesson_type", lesson_type_enum, nullable=False),
    Column("instructor_name", Text),
    Column("location", Text),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_lesson_slots_start_time", "start_time"),
)


# =====================================================
# 4. LESSON_BOOKINGS
# =====================================================
lesson_bookings = Table(
    "lesson_bookings",
    metadata,
    Column("booking_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "slot_id",
        Integer,
        ForeignKey("lesson_slots.slot_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "member_id",
        Integer,
        ForeignKey("members.member_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("status", booking_status_enum, nullable=False, server_default="confirmed"),
    # 1:1 with the live Google Calendar event; reused for every update/delete
    Column("google_calendar_event_id", Text),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_lesson_bookings_slot_id", "slot_id"),
    Index("idx_lesson_bookings_member_id", "member_id"),
)
