import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from app.booking import authorize_call_access, end_call, log_call_start
from app.config import settings
from app.db import get_db
from app.deps import get_current_user, get_now, get_optional_user
from app.exceptions import AccessDenied, BookingAPIError, NotAuthenticated, ValidationFailed
from app.lifecycle import appointment_id_from_room
from app.models import User
from app.schemas import CallEndBody, TokenBody
from app.video import create_room_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/token")
def issue_token(
    body: TokenBody,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Exchange an appointment room and participant for a video-room token.
    Rejections, in order of checking:
      - 400 missing-parameters / invalid-room
      - 401 unauthorized
      - 404 appointment-not-found / appointment-not-approved
      - 403 access-denied / call-time-invalid
      - 403 access-denied when participantIdentity is not the caller
    """
    if not (body.room_name and body.participant_name and body.participant_identity):
        raise ValidationFailed("Missing required parameters", "missing-parameters")
    if user is None:
        raise NotAuthenticated()

    appointment_id = appointment_id_from_room(body.room_name)
    if appointment_id is None:
        raise ValidationFailed("Room is not tied to an appointment", "invalid-room")

    authorize_call_access(db, user, appointment_id, now)
    if body.participant_identity != user.id:
        raise AccessDenied("Participant identity must match the signed-in user")

    try:
        token = create_room_token(body.room_name, body.participant_identity, body.participant_name, now)
    except Exception:
        logger.exception("Error generating video token for room %s", body.room_name)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    log_call_start(db, body.room_name, body.participant_identity, body.participant_name, user.id, now)
    logger.info("Issued video token for room %s to %s", body.room_name, user.id)
    return {"token": token}


@router.get("/{room_name}")
def open_call_page(
    room_name: str,
    appointment_id: Optional[str] = Query(default=None, alias="appointmentId"),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Data for the call page, or a redirect when the caller may not be there."""
    if user is None:
        return RedirectResponse("/login", status_code=303)

    room_appointment_id = appointment_id_from_room(room_name)
    if appointment_id and room_appointment_id != appointment_id:
        return RedirectResponse("/appointments?error=invalid-room", status_code=303)

    # appointment rooms are gated whether or not the query names the appointment
    if room_appointment_id:
        try:
            authorize_call_access(db, user, room_appointment_id, now)
        except BookingAPIError as exc:
            return RedirectResponse(f"/appointments?error={exc.error_code}", status_code=303)

    return {
        "room_name": room_name,
        "user_name": user.full_name,
        "user_email": user.email,
        "appointment_id": room_appointment_id,
    }


@router.post("/{room_name}/end")
def finish_call(
    room_name: str,
    body: CallEndBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    entry, appointment = end_call(
        db, user, room_name, body.participant_identity, body.duration_seconds,
        now, settings.CALL_COMPLETION_MIN_SECONDS,
    )
    return {
        "room_name": room_name,
        "call_log_id": entry.id if entry else None,
        "duration_seconds": entry.duration_seconds if entry else body.duration_seconds,
        "appointment_status": appointment.status if appointment else None,
    }
