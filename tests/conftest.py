# tests/conftest.py
import os
import tempfile
from datetime import datetime, timedelta

os.environ["SKIP_DB_INIT"] = "1"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.db import get_db
from app.deps import get_now
from app.models import Base, User, ExpertProfile, AvailabilitySlot, Appointment
from app.main import app

# Monday 08:00 UTC
NOW = datetime(2030, 1, 7, 8, 0)


@pytest.fixture(scope="function")
def test_db_session():
    # temp DB
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    db_url = f"sqlite:///{tmp.name}"

    # test engine / Session
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
        os.unlink(tmp.name)


@pytest.fixture
def clock():
    """Mutable 'now' used by every endpoint; tests may reassign clock['now']."""
    return {"now": NOW}


@pytest.fixture(scope="function")
def client(test_db_session, clock):
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock["now"]

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers as the hosted auth provider would issue them."""
    def _auth_headers(user_id):
        token = jwt.encode({"sub": user_id}, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


# —— Factories ——
@pytest.fixture
def make_user(test_db_session):
    def _make_user(user_id="u-1", full_name="User1", email=None, role="customer"):
        u = User(id=user_id, full_name=full_name, email=email or f"{user_id}@example.com", role=role)
        test_db_session.add(u)
        test_db_session.commit()
        return u
    return _make_user


@pytest.fixture
def make_expert(test_db_session, make_user):
    def _make_expert(expert_id="e-1", user_id="u-expert", full_name="Expert One", **fields):
        make_user(user_id=user_id, full_name=full_name, role="expert")
        fields.setdefault("title", "Data Scientist")
        fields.setdefault("expertise_areas", ["Python", "SQL"])
        fields.setdefault("hourly_rate", 100)
        e = ExpertProfile(id=expert_id, user_id=user_id, **fields)
        test_db_session.add(e)
        test_db_session.commit()
        return e
    return _make_expert


@pytest.fixture
def make_slot(test_db_session):
    def _make_slot(slot_id="s-1", expert_id="e-1", start=None, end=None, is_booked=False):
        start = start or (NOW + timedelta(days=1))
        end = end or (start + timedelta(hours=1))
        ts = AvailabilitySlot(id=slot_id, expert_id=expert_id, start_time=start, end_time=end, is_booked=is_booked)
        test_db_session.add(ts)
        test_db_session.commit()
        return ts
    return _make_slot


@pytest.fixture
def make_appointment(test_db_session, make_slot):
    def _make_appointment(appointment_id="a-1", user_id="u-1", expert_id="e-1", slot_id=None,
                          scheduled_at=None, duration_minutes=60, status="pending"):
        scheduled_at = scheduled_at or (NOW + timedelta(days=1))
        slot = make_slot(
            slot_id=slot_id or f"s-{appointment_id}", expert_id=expert_id, start=scheduled_at,
            end=scheduled_at + timedelta(minutes=duration_minutes), is_booked=True,
        )
        a = Appointment(
            id=appointment_id, user_id=user_id, expert_id=expert_id, availability_slot_id=slot.id,
            title="Consultation", status=status, scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
        )
        if status != "pending" and status != "declined":
            a.meeting_room_name = f"appointment-{appointment_id}"
            a.meeting_url = f"/call/appointment-{appointment_id}?appointmentId={appointment_id}"
        test_db_session.add(a)
        test_db_session.commit()
        return a
    return _make_appointment


@pytest.fixture
def participants(make_user, make_expert):
    """A customer u-1 and an expert e-1 owned by u-expert."""
    customer = make_user()
    expert = make_expert()
    return customer, expert
