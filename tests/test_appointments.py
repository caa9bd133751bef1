from datetime import timedelta

import pytest
from sqlalchemy import text

from app.booking import book_slot
from app.exceptions import Conflict
from app.models import Appointment, AvailabilitySlot


@pytest.fixture
def customer_headers(auth_headers):
    return auth_headers("u-1")


@pytest.fixture
def expert_headers(auth_headers):
    return auth_headers("u-expert")


def book(client, headers, slot_id="s-1", title="Career advice"):
    return client.post("/appointments", headers=headers, json={
        "expert_id": "e-1", "slot_id": slot_id, "title": title, "description": "  ",
    })


def test_booking_creates_pending_appointment_and_claims_slot(client, participants, make_slot, customer_headers, test_db_session):
    slot = make_slot()
    r = book(client, customer_headers)
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "pending"
    assert data["scheduled_at"] == slot.start_time.isoformat()
    assert data["duration_minutes"] == 60
    assert data["description"] is None
    assert data["meeting_url"] is None
    assert data["can_join"] is False

    test_db_session.expire_all()
    assert test_db_session.get(AvailabilitySlot, "s-1").is_booked is True


def test_booking_booked_slot_is_rejected_before_any_write(client, participants, make_slot, customer_headers, test_db_session):
    make_slot(is_booked=True)
    r = book(client, customer_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "slot-unavailable"
    assert test_db_session.query(Appointment).count() == 0


def test_second_booking_of_same_slot_fails(client, participants, make_user, make_slot, customer_headers, auth_headers, test_db_session):
    make_user(user_id="u-2")
    make_slot()
    assert book(client, customer_headers).status_code == 201
    r = book(client, auth_headers("u-2"))
    assert r.status_code == 409
    assert test_db_session.query(Appointment).filter(Appointment.availability_slot_id == "s-1").count() == 1


def test_concurrent_claim_is_detected_by_conditional_update(participants, make_slot, test_db_session, clock):
    customer, _ = participants
    slot = make_slot()
    assert slot.is_booked is False  # loaded into the session as unbooked

    # another request claims the row behind this session's back
    test_db_session.execute(text("UPDATE availability_slots SET is_booked = 1 WHERE id = 's-1'"))

    with pytest.raises(Conflict):
        book_slot(test_db_session, customer, "e-1", "s-1", "Late request", None, clock["now"])
    assert test_db_session.query(Appointment).count() == 0


def test_booking_past_slot_is_rejected(client, participants, make_slot, customer_headers, clock):
    make_slot(start=clock["now"] - timedelta(hours=2))
    assert book(client, customer_headers).status_code == 409


def test_booking_slot_of_other_expert_is_rejected(client, participants, make_expert, make_slot, customer_headers):
    make_expert(expert_id="e-2", user_id="u-expert-2")
    make_slot(expert_id="e-2")
    r = book(client, customer_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "slot-not-found"


def test_booking_requires_title_and_auth(client, participants, make_slot, customer_headers):
    make_slot()
    r = book(client, customer_headers, title="   ")
    assert r.status_code == 400
    assert r.json()["code"] == "title-required"
    assert book(client, {}).status_code == 401


def test_approval_assigns_meeting_link_once(client, participants, make_appointment, expert_headers):
    make_appointment()
    r = client.post("/appointments/a-1/approve", headers=expert_headers)
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "approved"
    assert data["meeting_room_name"] == "appointment-a-1"
    assert data["meeting_url"] == "/call/appointment-a-1?appointmentId=a-1"

    r = client.post("/appointments/a-1/approve", headers=expert_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "invalid-transition"


def test_only_expert_approves_or_declines(client, participants, make_appointment, customer_headers):
    make_appointment()
    assert client.post("/appointments/a-1/approve", headers=customer_headers).status_code == 403
    assert client.post("/appointments/a-1/decline", headers=customer_headers).status_code == 403


def test_outsider_cannot_see_or_change_appointment(client, participants, make_user, make_appointment, auth_headers):
    make_user(user_id="u-stranger")
    make_appointment()
    headers = auth_headers("u-stranger")
    assert client.get("/appointments/a-1", headers=headers).status_code == 403
    assert client.post("/appointments/a-1/cancel", headers=headers).status_code == 403
    assert client.get("/appointments/missing", headers=headers).status_code == 404


def test_declined_is_terminal(client, participants, make_appointment, expert_headers):
    make_appointment()
    r = client.post("/appointments/a-1/decline", headers=expert_headers)
    assert r.status_code == 200
    assert r.json()["meeting_url"] is None
    for action in ("approve", "cancel", "complete"):
        assert client.post(f"/appointments/a-1/{action}", headers=expert_headers).status_code == 409


def test_pending_cannot_be_completed_or_cancelled(client, participants, make_appointment, expert_headers):
    make_appointment()
    assert client.post("/appointments/a-1/complete", headers=expert_headers).status_code == 409
    assert client.post("/appointments/a-1/cancel", headers=expert_headers).status_code == 409


def test_customer_may_cancel_approved(client, participants, make_appointment, customer_headers, test_db_session):
    make_appointment(status="approved")
    r = client.post("/appointments/a-1/cancel", headers=customer_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    # slot is not released
    test_db_session.expire_all()
    assert test_db_session.get(AvailabilitySlot, "s-a-1").is_booked is True


def test_customer_cannot_complete(client, participants, make_appointment, customer_headers, expert_headers):
    make_appointment(status="approved")
    assert client.post("/appointments/a-1/complete", headers=customer_headers).status_code == 403
    r = client.post("/appointments/a-1/complete", headers=expert_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "completed"


def test_pending_never_exposes_meeting_url(client, participants, make_slot, customer_headers):
    make_slot()
    appointment_id = book(client, customer_headers).json()["id"]
    r = client.get(f"/appointments/{appointment_id}", headers=customer_headers)
    assert r.json()["status"] == "pending"
    assert r.json()["meeting_url"] is None


def test_listing_as_customer_and_expert(client, participants, make_appointment, customer_headers, expert_headers, clock):
    now = clock["now"]
    make_appointment(appointment_id="a-1", scheduled_at=now + timedelta(days=1))
    make_appointment(appointment_id="a-2", scheduled_at=now + timedelta(days=2), status="approved")

    mine = client.get("/appointments", headers=customer_headers).json()
    assert [a["id"] for a in mine] == ["a-2", "a-1"]

    incoming = client.get("/appointments", headers=expert_headers, params={"as_expert": True}).json()
    assert {a["id"] for a in incoming} == {"a-1", "a-2"}

    approved = client.get("/appointments", headers=customer_headers, params={"status": "approved"}).json()
    assert [a["id"] for a in approved] == ["a-2"]

    assert client.get("/appointments", headers=expert_headers).json() == []


def test_can_join_flag_follows_call_window(client, participants, make_appointment, customer_headers, clock):
    now = clock["now"]
    make_appointment(status="approved", scheduled_at=now + timedelta(minutes=10))
    assert client.get("/appointments/a-1", headers=customer_headers).json()["can_join"] is True

    clock["now"] = now - timedelta(minutes=10)
    assert client.get("/appointments/a-1", headers=customer_headers).json()["can_join"] is False
