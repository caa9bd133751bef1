from datetime import date, datetime, time, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class UtcModel(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, v):
        if isinstance(v, datetime):
            return to_utc_naive(v)
        return v


# —— Slots ——
class CreateSlotBody(UtcModel):
    start_time: datetime
    end_time: datetime


class BulkSlotsBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: date = Field(alias="date")
    start_time: time
    end_time: time
    slot_duration: int = 60
    recurring_days: List[int] = []
    recurring_weeks: int = 4


class QuickSlotsBody(UtcModel):
    start: datetime
    end: datetime
    slot_duration: int = 60
    split_into_slots: bool = True


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expert_id: str
    start_time: datetime
    end_time: datetime
    is_booked: bool


# —— Appointments ——
class BookingBody(BaseModel):
    expert_id: str
    slot_id: str
    title: str
    description: Optional[str] = None


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    expert_id: str
    availability_slot_id: str
    title: str
    description: Optional[str] = None
    status: str
    scheduled_at: datetime
    duration_minutes: int
    meeting_url: Optional[str] = None
    meeting_room_name: Optional[str] = None
    can_join: bool = False


# —— Calls ——
class TokenBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_name: Optional[str] = Field(default=None, alias="roomName")
    participant_name: Optional[str] = Field(default=None, alias="participantName")
    participant_identity: Optional[str] = Field(default=None, alias="participantIdentity")


class CallEndBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    participant_identity: str = Field(alias="participantIdentity")
    duration_seconds: int = Field(alias="durationSeconds")


# —— Experts ——
class ExpertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    full_name: str
    avatar_url: Optional[str] = None
    title: str
    description: Optional[str] = None
    expertise_areas: List[str] = []
    hourly_rate: Optional[float] = None
    subscription_type: str
    is_available: bool
    rating: float
    total_reviews: int


class ExpertDetailOut(ExpertOut):
    available_slots: List[SlotOut] = []


class ExpertUpdateBody(BaseModel):
    full_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    expertise_areas: Optional[List[str]] = None
    is_available: Optional[bool] = None
