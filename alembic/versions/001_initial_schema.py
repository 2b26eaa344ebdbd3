"""Initial schema: members, check-ins, lesson slots and bookings.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


check_in_type = postgresql.ENUM(
    "self_service", "staff_recorded", name="check_in_type", create_type=False
)
check_in_status = postgresql.ENUM(
    "pending", "approved", "rejected", name="check_in_status", create_type=False
)
lesson_type = postgresql.ENUM(
    "private", "group", "horsemanship", name="lesson_type", create_type=False
)
booking_status = postgresql.ENUM(
    "confirmed",
    "cancelled",
    "rescheduled",
    "completed",
    name="booking_status",
    create_type=False,
)

ENUMS = (check_in_type, check_in_status, lesson_type, booking_status)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "members",
        sa.Column("member_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("check_in_token_hash", sa.Text(), nullable=True),
        sa.Column(
            "check_in_token_issued_at",
            postgresql.TIMESTAMP(timezone=True),
            nullable=True,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("member_id", name=op.f("pk_members")),
        sa.UniqueConstraint(
            "check_in_token_hash", name=op.f("uq_members_check_in_token_hash")
        ),
    )
    op.create_index("idx_members_user_id", "members", ["user_id"], unique=False)

    op.create_table(
        "check_ins",
        sa.Column("check_in_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("check_in_type", check_in_type, nullable=False),
        sa.Column("program", sa.Text(), nullable=False),
        sa.Column(
            "checked_in_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status", check_in_status, server_default="pending", nullable=False
        ),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("adjudicated_by", sa.Integer(), nullable=True),
        sa.Column(
            "adjudicated_at", postgresql.TIMESTAMP(timezone=True), nullable=True
        ),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.member_id"],
            name=op.f("fk_check_ins_member_id_members"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("check_in_id", name=op.f("pk_check_ins")),
    )
    op.create_index(
        "idx_check_ins_member_id", "check_ins", ["member_id"], unique=False
    )
    op.create_index(
        "idx_check_ins_status_checked_in_at",
        "check_ins",
        ["status", "checked_in_at"],
        unique=False,
    )

    op.create_table(
        "lesson_slots",
        sa.Column("slot_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("lesson_type", lesson_type, nullable=False),
        sa.Column("instructor_name", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("slot_id", name=op.f("pk_lesson_slots")),
    )
    op.create_index(
        "idx_lesson_slots_start_time", "lesson_slots", ["start_time"], unique=False
    )

    op.create_table(
        "lesson_bookings",
        sa.Column("booking_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slot_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column(
            "status", booking_status, server_default="confirmed", nullable=False
        ),
        sa.Column("google_calendar_event_id", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["slot_id"],
            ["lesson_slots.slot_id"],
            name=op.f("fk_lesson_bookings_slot_id_lesson_slots"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.member_id"],
            name=op.f("fk_lesson_bookings_member_id_members"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("booking_id", name=op.f("pk_lesson_bookings")),
    )
    op.create_index(
        "idx_lesson_bookings_slot_id", "lesson_bookings", ["slot_id"], unique=False
    )
    op.create_index(
        "idx_lesson_bookings_member_id",
        "lesson_bookings",
        ["member_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_lesson_bookings_member_id", table_name="lesson_bookings")
    op.drop_index("idx_lesson_bookings_slot_id", table_name="lesson_bookings")
    op.drop_table("lesson_bookings")
    op.drop_index("idx_lesson_slots_start_time", table_name="lesson_slots")
    op.drop_table("lesson_slots")
    op.drop_index("idx_check_ins_status_checked_in_at", table_name="check_ins")
    op.drop_index("idx_check_ins_member_id", table_name="check_ins")
    op.drop_table("check_ins")
    op.drop_index("idx_members_user_id", table_name="members")
    op.drop_table("members")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
