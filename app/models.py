import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, Boolean, Text, JSON, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db import Base


def new_id():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="customer")  # customer|expert
    avatar_url = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    expert_profile = relationship("ExpertProfile", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint("role in ('customer','expert')", name="user_role_valid"),
    )

class ExpertProfile(Base):
    __tablename__ = "expert_profiles"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    expertise_areas = Column(JSON, nullable=False, default=list)
    hourly_rate = Column(Float)
    subscription_type = Column(String, nullable=False, default="free")  # free|premium
    is_available = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="expert_profile")

    __table_args__ = (
        CheckConstraint("subscription_type in ('free','premium')", name="expert_subscription_valid"),
    )

class AvailabilitySlot(Base):
    __tablename__ = "availability_slots"
    id = Column(String, primary_key=True, default=new_id)
    expert_id = Column(String, ForeignKey("expert_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="slot_time_valid"),
    )

class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expert_id = Column(String, ForeignKey("expert_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    availability_slot_id = Column(String, ForeignKey("availability_slots.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    status = Column(String, nullable=False, default="pending")  # pending|approved|declined|completed|cancelled
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    meeting_url = Column(String)
    meeting_room_name = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','approved','declined','completed','cancelled')",
            name="appointment_status_valid",
        ),
        UniqueConstraint("availability_slot_id", name="uniq_appointment_slot"),
    )

class CallLog(Base):
    __tablename__ = "call_logs"
    id = Column(String, primary_key=True, default=new_id)
    room_name = Column(String, nullable=False, index=True)
    participant_identity = Column(String, nullable=False)
    participant_name = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    started_at = Column(DateTime, default=datetime.utcnow)
    ended_at = Column(DateTime)
    duration_seconds = Column(Integer)
