"""
Check-in API routes.

Endpoints:
- POST /api/check-ins/self - Member self check-in with a QR token (no session)
- POST /api/check-ins/staff - Staff records a check-in for a member
- GET /api/check-ins/pending - Pending check-ins awaiting review, oldest first
- POST /api/check-ins/{check_in_id}/approve - Approve a pending check-in
- POST /api/check-ins/{check_in_id}/reject - Reject a pending check-in
- GET /api/check-ins/recent - Latest check-ins across members
- GET /api/check-ins/today - Check-ins since local midnight at the facility
- GET /api/check-ins/members/{member_id} - One member's history
- POST /api/check-ins/tokens - Issue (rotate) a member's QR check-in token
"""

import sys
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from facility.checkins import DEFAULT_HISTORY_LIMIT, CheckInLedger
from facility.errors import InvalidStateError, NotFoundError
from facility.tokens import issue_check_in_token
from web_api.auth import require_staff
from web_api.rate_limit import self_check_in_limiter

router = APIRouter(prefix="/api/check-ins", tags=["check-ins"])


class SelfCheckInRequest(BaseModel):
    """Request body for a QR self check-in."""

    token: str = Field(min_length=1, max_length=256)
    program: str = Field(min_length=1, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)


class StaffCheckInRequest(BaseModel):
    """Request body for a staff-recorded check-in."""

    member_id: int
    program: str = Field(min_length=1, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    """Request body for rejecting a check-in."""

    reason: str | None = Field(default=None, max_length=500)


class IssueTokenRequest(BaseModel):
    """Request body for issuing a member's check-in token."""

    member_id: int


def get_ledger(request: Request) -> CheckInLedger:
    """The ledger built at startup (see main.lifespan)."""
    return request.app.state.ledger


@router.post("/self", status_code=201)
async def self_check_in(
    body: SelfCheckInRequest,
    request: Request,
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """
    Record a self-service check-in.

    The QR token is the credential, so no session is needed. Returns 404
    for unknown tokens without revealing anything about members.
    """
    self_check_in_limiter.check(request)

    try:
        check_in = await ledger.record_self_check_in(
            body.token, body.program, body.notes
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Invalid check-in code")

    return {
        "check_in_id": check_in.check_in_id,
        "member_name": check_in.member_name,
        "program": check_in.program,
        "status": check_in.status.value,
        "checked_in_at": check_in.checked_in_at.isoformat(),
    }


@router.post("/staff", status_code=201)
async def staff_check_in(
    body: StaffCheckInRequest,
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Record a check-in on a member's behalf."""
    try:
        check_in = await ledger.record_staff_check_in(
            body.member_id, body.program, staff["user_id"], body.notes
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return check_in.to_dict()


@router.get("/pending")
async def list_pending(
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Pending check-ins, oldest first."""
    check_ins = await ledger.list_pending()
    return {"check_ins": [c.to_dict() for c in check_ins]}


@router.post("/{check_in_id}/approve")
async def approve_check_in(
    check_in_id: int,
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Approve a pending check-in. 409 if it was already decided."""
    try:
        check_in = await ledger.approve(check_in_id, staff["user_id"])
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return check_in.to_dict()


@router.post("/{check_in_id}/reject")
async def reject_check_in(
    check_in_id: int,
    body: RejectRequest | None = None,
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Reject a pending check-in. 409 if it was already decided."""
    reason = body.reason if body else None
    try:
        check_in = await ledger.reject(check_in_id, staff["user_id"], reason)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return check_in.to_dict()


@router.get("/recent")
async def recent_check_ins(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=200),
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    check_ins = await ledger.get_recent_check_ins(limit)
    return {"check_ins": [c.to_dict() for c in check_ins]}


@router.get("/today")
async def today_check_ins(
    request: Request,
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    tz_name = request.app.state.settings.facility_timezone
    check_ins = await ledger.get_today_check_ins(tz_name)
    return {"check_ins": [c.to_dict() for c in check_ins]}


@router.get("/members/{member_id}")
async def member_check_ins(
    member_id: int,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=200),
    staff: dict = Depends(require_staff),
    ledger: CheckInLedger = Depends(get_ledger),
) -> dict[str, Any]:
    check_ins = await ledger.get_member_check_ins(member_id, limit)
    return {"check_ins": [c.to_dict() for c in check_ins]}


@router.post("/tokens", status_code=201)
async def issue_token(
    body: IssueTokenRequest,
    staff: dict = Depends(require_staff),
) -> dict[str, Any]:
    """
    Issue a new check-in token for a member's QR code.

    Any previous token stops working. The token is only returned here.
    """
    try:
        token = await issue_check_in_token(body.member_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"member_id": body.member_id, "token": token}
