import logging
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import text
from app.config import settings
from app.db import get_db
from app.deps import get_current_expert, get_now
from app.booking import bookable_slots
from app.exceptions import Conflict, NotFound, ValidationFailed
from app.models import AvailabilitySlot, ExpertProfile
from app.scheduling import generate_slots, split_range, within_business_hours
from app.schemas import BulkSlotsBody, CreateSlotBody, QuickSlotsBody, SlotOut

logger = logging.getLogger(__name__)

router = APIRouter()


def _insert_slots(db: Session, expert: ExpertProfile, pairs) -> list[AvailabilitySlot]:
    rows = [
        AvailabilitySlot(expert_id=expert.id, start_time=start, end_time=end, is_booked=False)
        for start, end in pairs
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows


@router.get("")
def list_slots(
    expert_id: str = Query(...),
    available_only: bool = Query(default=False),
    db: Session = Depends(get_db)
):
    """
    Calendar view of an expert's slots, tagged with their booking status:
      - BOOKED: a booking has claimed the slot (with the appointment status)
      - AVAILABLE: otherwise
    """
    where = "WHERE s.expert_id = :expert_id"
    if available_only:
        where += " AND s.is_booked = :unbooked"

    # Appointment linked to a booked slot, if any. Scalar subqueries keep it SQLite friendly.
    sql = text(f"""
        SELECT
            s.id AS slot_id,
            s.expert_id,
            s.start_time,
            s.end_time,
            s.is_booked,
            (
                SELECT a.id
                FROM appointments a
                WHERE a.availability_slot_id = s.id
                LIMIT 1
            ) AS appointment_id,
            (
                SELECT a.status
                FROM appointments a
                WHERE a.availability_slot_id = s.id
                LIMIT 1
            ) AS appointment_status
        FROM availability_slots s
        {where}
        ORDER BY s.start_time ASC
    """)
    rows = db.execute(sql, {"expert_id": expert_id, "unbooked": False}).fetchall()

    return [
        {
            "slot_id": r.slot_id,
            "expert_id": r.expert_id,
            "start_time": r.start_time,
            "end_time": r.end_time,
            "status": "BOOKED" if r.is_booked else "AVAILABLE",
            "appointment_id": r.appointment_id,
            "appointment_status": r.appointment_status,
        }
        for r in rows
    ]


@router.post("", status_code=201, response_model=list[SlotOut])
def create_slot(
    body: CreateSlotBody,
    expert: ExpertProfile = Depends(get_current_expert),
    db: Session = Depends(get_db)
):
    if body.end_time <= body.start_time:
        raise ValidationFailed("End time must be after start time", "invalid-time-range")
    return _insert_slots(db, expert, [(body.start_time, body.end_time)])


@router.post("/bulk", status_code=201, response_model=list[SlotOut])
def create_bulk_slots(
    body: BulkSlotsBody,
    expert: ExpertProfile = Depends(get_current_expert),
    db: Session = Depends(get_db)
):
    """
    Generate back-to-back slots between start_time and end_time on one date,
    or on every selected weekday for recurring_weeks weeks.
    Existing slots are not checked for overlap.
    """
    pairs = generate_slots(
        body.day, body.start_time, body.end_time, body.slot_duration,
        weekdays=body.recurring_days or None, weeks=body.recurring_weeks,
    )
    if not pairs:
        raise ValidationFailed("Time range is shorter than one slot", "no-slots-generated")
    rows = _insert_slots(db, expert, pairs)
    logger.info("Expert %s created %d slots from %s", expert.id, len(rows), body.day)
    return rows


@router.post("/quick", status_code=201, response_model=list[SlotOut])
def create_quick_slots(
    body: QuickSlotsBody,
    expert: ExpertProfile = Depends(get_current_expert),
    db: Session = Depends(get_db)
):
    """Slots from a range dragged on the calendar; limited to business hours."""
    if not within_business_hours(
        body.start, body.end, settings.BUSINESS_DAYS,
        settings.BUSINESS_HOURS_START, settings.BUSINESS_HOURS_END,
    ):
        raise ValidationFailed("Selected range is outside business hours", "outside-business-hours")
    pairs = split_range(body.start, body.end, body.slot_duration, body.split_into_slots)
    if not pairs:
        raise ValidationFailed("Time range is shorter than one slot", "no-slots-generated")
    rows = _insert_slots(db, expert, pairs)
    logger.info("Expert %s created %d slots from a calendar selection", expert.id, len(rows))
    return rows


@router.delete("/{slot_id}", status_code=204)
def delete_slot(
    slot_id: str,
    expert: ExpertProfile = Depends(get_current_expert),
    db: Session = Depends(get_db)
):
    slot = db.get(AvailabilitySlot, slot_id)
    if slot is None or slot.expert_id != expert.id:
        raise NotFound("Slot not found", "slot-not-found")

    # Only unbooked slots may go; the condition is re-checked in the delete itself
    res = db.execute(
        text("DELETE FROM availability_slots WHERE id = :slot_id AND is_booked = :unbooked"),
        {"slot_id": slot_id, "unbooked": False},
    )
    if res.rowcount != 1:
        db.rollback()
        raise Conflict("Booked slots cannot be deleted", "slot-booked")
    db.commit()


@router.get("/upcoming", response_model=list[SlotOut])
def list_bookable_slots(
    expert_id: str = Query(...),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Unbooked slots a customer can still pick, within the booking horizon."""
    return bookable_slots(db, expert_id, now, settings.BOOKING_HORIZON_DAYS)
