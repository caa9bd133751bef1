from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.booking import book_slot, get_participant_appointment, transition_appointment
from app.db import get_db
from app.deps import get_current_user, get_now
from app.lifecycle import AppointmentStatus, can_join
from app.models import Appointment, ExpertProfile, User
from app.schemas import AppointmentOut, BookingBody

router = APIRouter()


def to_out(appointment: Appointment, now: datetime) -> AppointmentOut:
    out = AppointmentOut.model_validate(appointment)
    out.can_join = can_join(appointment, now)
    return out


@router.post("", status_code=201, response_model=AppointmentOut)
def create_appointment(
    body: BookingBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    appointment = book_slot(db, user, body.expert_id, body.slot_id, body.title, body.description, now)
    return to_out(appointment, now)


@router.get("", response_model=list[AppointmentOut])
def list_appointments(
    as_expert: bool = Query(default=False),
    status: Optional[AppointmentStatus] = Query(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """The caller's bookings, or with as_expert the requests made to them."""
    query = db.query(Appointment)
    if as_expert:
        query = query.join(ExpertProfile, ExpertProfile.id == Appointment.expert_id).filter(
            ExpertProfile.user_id == user.id
        )
    else:
        query = query.filter(Appointment.user_id == user.id)
    if status is not None:
        query = query.filter(Appointment.status == status.value)
    return [to_out(a, now) for a in query.order_by(Appointment.scheduled_at.desc()).all()]


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    appointment, _ = get_participant_appointment(db, user, appointment_id)
    return to_out(appointment, now)


@router.post("/{appointment_id}/approve", response_model=AppointmentOut)
def approve_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Expert accepts a pending request; the meeting link is assigned in the same write."""
    appointment = transition_appointment(db, user, appointment_id, AppointmentStatus.APPROVED)
    return to_out(appointment, now)


@router.post("/{appointment_id}/decline", response_model=AppointmentOut)
def decline_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    appointment = transition_appointment(db, user, appointment_id, AppointmentStatus.DECLINED)
    return to_out(appointment, now)


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    # The slot stays booked; slots are never reused
    appointment = transition_appointment(db, user, appointment_id, AppointmentStatus.CANCELLED)
    return to_out(appointment, now)


@router.post("/{appointment_id}/complete", response_model=AppointmentOut)
def complete_appointment(
    appointment_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    appointment = transition_appointment(db, user, appointment_id, AppointmentStatus.COMPLETED)
    return to_out(appointment, now)
