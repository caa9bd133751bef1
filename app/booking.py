"""
Store-backed booking operations.

Every function takes the session and the authenticated user explicitly;
routers only translate HTTP to these calls.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import AccessDenied, Conflict, NotFound, ValidationFailed, OutsideCallWindow
from app.lifecycle import (
    AppointmentStatus, appointment_id_from_room, assign_meeting_link,
    check_transition, is_within_call_window,
)
from app.models import Appointment, AvailabilitySlot, CallLog, ExpertProfile, User

logger = logging.getLogger(__name__)

EXPERT, CUSTOMER = "expert", "customer"

# who may request each target status
TRANSITION_ACTORS = {
    AppointmentStatus.APPROVED: {EXPERT},
    AppointmentStatus.DECLINED: {EXPERT},
    AppointmentStatus.COMPLETED: {EXPERT},
    AppointmentStatus.CANCELLED: {EXPERT, CUSTOMER},
}


def book_slot(
    db: Session,
    user: User,
    expert_id: str,
    slot_id: str,
    title: str,
    description: Optional[str],
    now: datetime,
) -> Appointment:
    """
    Create a pending appointment against an unbooked slot.

    The slot is claimed with a conditional update (``is_booked`` false -> true)
    in the same transaction as the appointment insert, so two concurrent
    attempts on one slot can never both succeed.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Title is required", "title-required")

    slot = db.get(AvailabilitySlot, slot_id)
    if slot is None or slot.expert_id != expert_id:
        raise NotFound("Selected time slot does not exist", "slot-not-found")
    if slot.is_booked or slot.start_time < now:
        logger.warning("Rejected booking of slot %s by %s: no longer available", slot_id, user.id)
        raise Conflict("Selected time slot is no longer available", "slot-unavailable")

    claim = text("""
        UPDATE availability_slots SET is_booked = :booked
        WHERE id = :slot_id AND is_booked = :unbooked
    """)
    res = db.execute(claim, {"slot_id": slot_id, "booked": True, "unbooked": False})
    if res.rowcount != 1:
        db.rollback()
        logger.warning("Rejected booking of slot %s by %s: claimed concurrently", slot_id, user.id)
        raise Conflict("Selected time slot is no longer available", "slot-unavailable")

    appointment = Appointment(
        user_id=user.id,
        expert_id=expert_id,
        availability_slot_id=slot_id,
        title=title,
        description=(description or "").strip() or None,
        status=AppointmentStatus.PENDING.value,
        scheduled_at=slot.start_time,
        duration_minutes=int((slot.end_time - slot.start_time).total_seconds() // 60),
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Selected time slot is no longer available", "slot-unavailable")
    db.refresh(appointment)
    logger.info("Appointment %s booked on slot %s by %s", appointment.id, slot_id, user.id)
    return appointment


def participant_role(db: Session, appointment: Appointment, user: User) -> Optional[str]:
    if appointment.user_id == user.id:
        return CUSTOMER
    owner_id = db.query(ExpertProfile.user_id).filter(ExpertProfile.id == appointment.expert_id).scalar()
    if owner_id == user.id:
        return EXPERT
    return None


def get_participant_appointment(db: Session, user: User, appointment_id: str) -> Tuple[Appointment, str]:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found", "appointment-not-found")
    role = participant_role(db, appointment, user)
    if role is None:
        raise AccessDenied()
    return appointment, role


def _apply_transition(db: Session, appointment: Appointment, target: AppointmentStatus) -> Appointment:
    check_transition(appointment.status, target)
    previous = appointment.status
    appointment.status = target.value
    if target == AppointmentStatus.APPROVED:
        assign_meeting_link(appointment)
    db.commit()
    db.refresh(appointment)
    logger.info("Appointment %s moved %s -> %s", appointment.id, previous, target.value)
    return appointment


def transition_appointment(db: Session, user: User, appointment_id: str, target) -> Appointment:
    target = AppointmentStatus(target)
    appointment, role = get_participant_appointment(db, user, appointment_id)
    if role not in TRANSITION_ACTORS.get(target, set()):
        raise AccessDenied(f"Only the expert can mark an appointment {target.value}")
    return _apply_transition(db, appointment, target)


def authorize_call_access(db: Session, user: User, appointment_id: str, now: datetime) -> Appointment:
    """Shared gate for the call page and token issuance"""
    appointment, _ = get_participant_appointment(db, user, appointment_id)
    if appointment.status != AppointmentStatus.APPROVED.value:
        raise NotFound("Appointment not found or not approved", "appointment-not-approved")
    if not is_within_call_window(now, appointment.scheduled_at, appointment.duration_minutes):
        raise OutsideCallWindow()
    return appointment


def log_call_start(
    db: Session,
    room_name: str,
    participant_identity: str,
    participant_name: str,
    user_id: str,
    now: datetime,
) -> Optional[CallLog]:
    """Append a call log row; failures are logged and never propagate"""
    try:
        entry = CallLog(
            room_name=room_name,
            participant_identity=participant_identity,
            participant_name=participant_name,
            user_id=user_id,
            started_at=now,
        )
        db.add(entry)
        db.commit()
        return entry
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error logging call for room %s", room_name)
        return None


def end_call(
    db: Session,
    user: User,
    room_name: str,
    participant_identity: str,
    duration_seconds: int,
    now: datetime,
    min_completion_seconds: int,
) -> Tuple[Optional[CallLog], Optional[Appointment]]:
    """
    Close the caller's open call log for a room and, when the call was long
    enough, complete the approved appointment behind it.

    The stored duration is the time elapsed since the log was opened, not the
    client's figure. Completion needs that log to have started inside the
    appointment's call window.
    """
    if duration_seconds < 0:
        raise ValidationFailed("Duration must not be negative", "invalid-duration")

    entry = (
        db.query(CallLog)
        .filter(
            CallLog.room_name == room_name,
            CallLog.user_id == user.id,
            CallLog.participant_identity == participant_identity,
            CallLog.ended_at.is_(None),
        )
        .order_by(CallLog.started_at.desc())
        .first()
    )
    if entry is None:
        logger.info("No open call log for %s in room %s", user.id, room_name)
        return None, None

    started_at = entry.started_at
    entry.ended_at = now
    entry.duration_seconds = max(int((now - started_at).total_seconds()), 0)
    db.commit()

    appointment = None
    appointment_id = appointment_id_from_room(room_name)
    if appointment_id and entry.duration_seconds > min_completion_seconds:
        appointment, _ = get_participant_appointment(db, user, appointment_id)
        if appointment.status != AppointmentStatus.APPROVED.value:
            return entry, None
        if not is_within_call_window(started_at, appointment.scheduled_at, appointment.duration_minutes):
            logger.warning("Call in room %s started outside its window; not completing", room_name)
            return entry, None
        appointment = _apply_transition(db, appointment, AppointmentStatus.COMPLETED)
    return entry, appointment


def bookable_slots(db: Session, expert_id: str, now: datetime, horizon_days: int) -> List[AvailabilitySlot]:
    return (
        db.query(AvailabilitySlot)
        .filter(
            AvailabilitySlot.expert_id == expert_id,
            AvailabilitySlot.is_booked.is_(False),
            AvailabilitySlot.start_time >= now,
            AvailabilitySlot.start_time <= now + timedelta(days=horizon_days),
        )
        .order_by(AvailabilitySlot.start_time.asc())
        .all()
    )
