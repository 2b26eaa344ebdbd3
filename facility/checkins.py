"""
Check-in ledger: attendance records and their adjudication state machine.

    pending --approve--> approved   (terminal)
    pending --reject---> rejected   (terminal)

Transitions are a single conditional UPDATE (status must still be pending),
so when two staff members adjudicate the same record concurrently exactly
one wins and the other gets InvalidStateError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from .database import get_connection, get_transaction
from .enums import CheckInStatus, CheckInType
from .errors import InvalidStateError, InvalidTokenError, NotFoundError
from .tables import check_ins, members
from .timezone import local_day_start_utc
from .tokens import find_member_by_token

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


@dataclass
class CheckIn:
    """One attendance event."""

    check_in_id: int
    member_id: int
    check_in_type: CheckInType
    program: str
    checked_in_at: datetime
    status: CheckInStatus
    notes: str | None = None
    rejection_reason: str | None = None
    recorded_by: int | None = None
    adjudicated_by: int | None = None
    adjudicated_at: datetime | None = None
    member_name: str | None = None

    @classmethod
    def from_row(cls, row: Any, member_name: str | None = None) -> "CheckIn":
        if member_name is None and "first_name" in row:
            member_name = " ".join(
                p for p in (row["first_name"], row.get("last_name")) if p
            )
        return cls(
            check_in_id=row["check_in_id"],
            member_id=row["member_id"],
            check_in_type=CheckInType(row["check_in_type"]),
            program=row["program"],
            checked_in_at=row["checked_in_at"],
            status=CheckInStatus(row["status"]),
            notes=row.get("notes"),
            rejection_reason=row.get("rejection_reason"),
            recorded_by=row.get("recorded_by"),
            adjudicated_by=row.get("adjudicated_by"),
            adjudicated_at=row.get("adjudicated_at"),
            member_name=member_name,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != CheckInStatus.pending

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_in_id": self.check_in_id,
            "member_id": self.member_id,
            "member_name": self.member_name,
            "check_in_type": self.check_in_type.value,
            "program": self.program,
            "checked_in_at": self.checked_in_at.isoformat(),
            "notes": self.notes,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
            "recorded_by": self.recorded_by,
            "adjudicated_by": self.adjudicated_by,
            "adjudicated_at": (
                self.adjudicated_at.isoformat() if self.adjudicated_at else None
            ),
        }


def _with_member_names():
    """Base query: check-ins joined with member names, for staff views."""
    return select(
        check_ins,
        members.c.first_name,
        members.c.last_name,
    ).select_from(
        check_ins.join(members, check_ins.c.member_id == members.c.member_id)
    )


async def _insert_check_in(conn: AsyncConnection, **values) -> CheckIn:
    result = await conn.execute(insert(check_ins).values(**values).returning(check_ins))
    return CheckIn.from_row(result.mappings().first())


class CheckInLedger:
    """
    Owns check-in records and their pending/approved/rejected lifecycle.

    Args:
        staff_auto_approve: Whether staff-recorded check-ins start approved
            (the staff member is the verifier) or pending like self check-ins.
    """

    def __init__(self, staff_auto_approve: bool = True):
        self.staff_auto_approve = staff_auto_approve

    async def record_self_check_in(
        self,
        token: str,
        program: str,
        notes: str | None = None,
    ) -> CheckIn:
        """
        Record a self-service check-in from a scanned QR token.

        Token verification and the insert share one transaction; an unknown
        token leaves the ledger untouched.

        Raises:
            InvalidTokenError: If the token matches no member
        """
        async with get_transaction() as conn:
            member = await find_member_by_token(conn, token)
            if member is None:
                raise InvalidTokenError("Unknown check-in token")

            check_in = await _insert_check_in(
                conn,
                member_id=member.member_id,
                check_in_type=CheckInType.self_service,
                program=program,
                checked_in_at=datetime.now(timezone.utc),
                notes=notes,
                status=CheckInStatus.pending,
            )

        check_in.member_name = member.display_name
        logger.info(
            f"Self check-in {check_in.check_in_id} recorded for member "
            f"{member.member_id} ({program}), awaiting staff review"
        )
        return check_in

    async def record_staff_check_in(
        self,
        member_id: int,
        program: str,
        actor_id: int,
        notes: str | None = None,
    ) -> CheckIn:
        """
        Record a check-in entered by a staff member.

        Raises:
            NotFoundError: If the member does not exist
        """
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {
            "member_id": member_id,
            "check_in_type": CheckInType.staff_recorded,
            "program": program,
            "checked_in_at": now,
            "notes": notes,
            "recorded_by": actor_id,
            "status": CheckInStatus.pending,
        }
        if self.staff_auto_approve:
            values.update(
                status=CheckInStatus.approved,
                adjudicated_by=actor_id,
                adjudicated_at=now,
            )

        async with get_transaction() as conn:
            result = await conn.execute(
                select(members.c.member_id).where(members.c.member_id == member_id)
            )
            if not result.mappings().first():
                raise NotFoundError(f"Member {member_id} not found")

            check_in = await _insert_check_in(conn, **values)

        logger.info(
            f"Staff check-in {check_in.check_in_id} recorded for member {member_id} "
            f"by {actor_id} ({check_in.status.value})"
        )
        return check_in

    async def approve(self, check_in_id: int, actor_id: int) -> CheckIn:
        """
        Approve a pending check-in.

        Raises:
            NotFoundError: If the check-in does not exist
            InvalidStateError: If it was already approved or rejected
        """
        return await self._adjudicate(check_in_id, CheckInStatus.approved, actor_id)

    async def reject(
        self,
        check_in_id: int,
        actor_id: int,
        reason: str | None = None,
    ) -> CheckIn:
        """
        Reject a pending check-in, optionally recording why.

        Raises:
            NotFoundError: If the check-in does not exist
            InvalidStateError: If it was already approved or rejected
        """
        return await self._adjudicate(
            check_in_id, CheckInStatus.rejected, actor_id, reason
        )

    async def _adjudicate(
        self,
        check_in_id: int,
        new_status: CheckInStatus,
        actor_id: int,
        reason: str | None = None,
    ) -> CheckIn:
        values: dict[str, Any] = {
            "status": new_status,
            "adjudicated_by": actor_id,
            "adjudicated_at": datetime.now(timezone.utc),
        }
        if new_status == CheckInStatus.rejected:
            values["rejection_reason"] = reason

        async with get_transaction() as conn:
            # Compare-and-set: only a pending row can transition
            result = await conn.execute(
                update(check_ins)
                .where(
                    and_(
                        check_ins.c.check_in_id == check_in_id,
                        check_ins.c.status == CheckInStatus.pending,
                    )
                )
                .values(**values)
                .returning(check_ins)
            )
            row = result.mappings().first()

            if row is None:
                current = await conn.execute(
                    select(check_ins.c.status).where(
                        check_ins.c.check_in_id == check_in_id
                    )
                )
                current_row = current.mappings().first()
                if not current_row:
                    raise NotFoundError(f"Check-in {check_in_id} not found")
                raise InvalidStateError(
                    check_in_id, CheckInStatus(current_row["status"]).value
                )

        check_in = CheckIn.from_row(row)
        logger.info(
            f"Check-in {check_in_id} {new_status.value} by {actor_id}"
            + (f": {reason}" if reason else "")
        )
        return check_in

    async def list_pending(self) -> list[CheckIn]:
        """
        All pending check-ins, oldest first.

        One statement, so the result is a consistent snapshot even while
        other staff are adjudicating.
        """
        query = (
            _with_member_names()
            .where(check_ins.c.status == CheckInStatus.pending)
            .order_by(check_ins.c.checked_in_at.asc(), check_ins.c.check_in_id.asc())
        )
        async with get_connection() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()

        return [CheckIn.from_row(row) for row in rows]

    async def get_check_in(self, check_in_id: int) -> CheckIn:
        """
        Raises:
            NotFoundError: If the check-in does not exist
        """
        query = _with_member_names().where(check_ins.c.check_in_id == check_in_id)
        async with get_connection() as conn:
            result = await conn.execute(query)
            row = result.mappings().first()

        if not row:
            raise NotFoundError(f"Check-in {check_in_id} not found")
        return CheckIn.from_row(row)

    async def get_member_check_ins(
        self,
        member_id: int,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[CheckIn]:
        """A member's check-in history, newest first."""
        query = (
            _with_member_names()
            .where(check_ins.c.member_id == member_id)
            .order_by(check_ins.c.checked_in_at.desc())
            .limit(limit)
        )
        async with get_connection() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()

        return [CheckIn.from_row(row) for row in rows]

    async def get_recent_check_ins(
        self,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[CheckIn]:
        """Most recent check-ins across all members, newest first."""
        query = (
            _with_member_names()
            .order_by(check_ins.c.checked_in_at.desc())
            .limit(limit)
        )
        async with get_connection() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()

        return [CheckIn.from_row(row) for row in rows]

    async def get_today_check_ins(
        self,
        tz_name: str,
        now: datetime | None = None,
    ) -> list[CheckIn]:
        """Check-ins since local midnight in the facility's timezone, newest first."""
        since = local_day_start_utc(tz_name, now)
        query = (
            _with_member_names()
            .where(check_ins.c.checked_in_at >= since)
            .order_by(check_ins.c.checked_in_at.desc())
        )
        async with get_connection() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()

        return [CheckIn.from_row(row) for row in rows]
