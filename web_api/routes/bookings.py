"""
Booking notification API routes.

Endpoints:
- POST /api/bookings/{booking_id}/notifications - Notify channels of a booking change
- GET /api/bookings/{booking_id}/invite.ics - Download the booking's calendar invite
"""

import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from facility.bookings import get_notification_job
from facility.enums import LifecycleEvent
from facility.errors import NotFoundError
from facility.notifications.actions import notify_booking
from facility.notifications.dispatcher import NotificationDispatcher
from facility.notifications.ics import build_lesson_ics
from web_api.auth import require_staff

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class NotifyRequest(BaseModel):
    """Request body for a booking notification."""

    event: LifecycleEvent


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """The dispatcher built at startup (see main.lifespan)."""
    return request.app.state.dispatcher


@router.post("/{booking_id}/notifications")
async def notify_booking_endpoint(
    booking_id: int,
    body: NotifyRequest,
    request: Request,
    staff: dict = Depends(require_staff),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """
    Sync a booking change to SMS, Google Calendar and the .ics invite.

    Always 200 once the booking is found: per-channel failures are reported
    in the results, not as an error status.
    """
    settings = request.app.state.settings
    try:
        result = await notify_booking(
            dispatcher,
            body.event,
            booking_id,
            reminder_offset=timedelta(hours=settings.lesson_reminder_hours),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    response = result.to_dict()
    response["ics"] = result.ics_document
    return response


@router.get("/{booking_id}/invite.ics")
async def download_invite(
    booking_id: int,
    request: Request,
    staff: dict = Depends(require_staff),
) -> Response:
    """Calendar invite for a booking, importable into any calendar app."""
    job = await get_notification_job(booking_id, include_cancelled=False)
    if job is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    settings = request.app.state.settings
    document = build_lesson_ics(
        job,
        organizer_email=settings.organizer_email,
        facility_name=settings.facility_name,
        domain=settings.ics_uid_domain,
    )
    return Response(
        content=document,
        media_type="text/calendar; charset=utf-8; method=REQUEST",
        headers={"Content-Disposition": f'attachment; filename="lesson-{booking_id}.ics"'},
    )
