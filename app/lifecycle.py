"""
Appointment lifecycle rules.

One place for the status state machine, the meeting link derived on
approval, and the time window during which a call may be joined. Both the
``can_join`` flag in API responses and the server-side call checks go
through ``can_join`` / ``is_within_call_window`` so they never disagree.
"""

import enum
from datetime import datetime, timedelta
from typing import Optional, Tuple

from app.exceptions import InvalidTransition

JOIN_LEAD = timedelta(minutes=15)
JOIN_GRACE = timedelta(minutes=30)

ROOM_PREFIX = "appointment-"


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.APPROVED, AppointmentStatus.DECLINED},
    AppointmentStatus.APPROVED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.DECLINED: set(),
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


def is_terminal(status) -> bool:
    return not ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def check_transition(current, target) -> AppointmentStatus:
    """Raise InvalidTransition unless ``current -> target`` is a legal move."""
    current, target = AppointmentStatus(current), AppointmentStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)
    return target


def meeting_room_name(appointment_id: str) -> str:
    return f"{ROOM_PREFIX}{appointment_id}"


def meeting_url(appointment_id: str) -> str:
    return f"/call/{meeting_room_name(appointment_id)}?appointmentId={appointment_id}"


def appointment_id_from_room(room_name: str) -> Optional[str]:
    if not room_name.startswith(ROOM_PREFIX):
        return None
    return room_name[len(ROOM_PREFIX):] or None


def assign_meeting_link(appointment) -> None:
    # recomputing for an already-approved appointment yields the same values
    appointment.meeting_room_name = meeting_room_name(appointment.id)
    appointment.meeting_url = meeting_url(appointment.id)


def call_window(scheduled_at: datetime, duration_minutes: int) -> Tuple[datetime, datetime]:
    opens = scheduled_at - JOIN_LEAD
    closes = scheduled_at + timedelta(minutes=duration_minutes) + JOIN_GRACE
    return opens, closes


def is_within_call_window(now: datetime, scheduled_at: datetime, duration_minutes: int) -> bool:
    opens, closes = call_window(scheduled_at, duration_minutes)
    return opens <= now <= closes


def can_join(appointment, now: datetime) -> bool:
    return (
        appointment.status == AppointmentStatus.APPROVED.value
        and is_within_call_window(now, appointment.scheduled_at, appointment.duration_minutes)
    )
