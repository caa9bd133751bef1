import logging
from datetime import datetime
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload
from app.booking import bookable_slots
from app.config import settings
from app.db import get_db
from app.deps import get_current_expert, get_now
from app.exceptions import NotFound
from app.models import ExpertProfile
from app.schemas import ExpertDetailOut, ExpertOut, ExpertUpdateBody, SlotOut

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_COLUMNS = {
    "rating": ExpertProfile.rating,
    "price": ExpertProfile.hourly_rate,
    "reviews": ExpertProfile.total_reviews,
    "newest": ExpertProfile.created_at,
}

REQUIRED_FIELDS = {"title", "expertise_areas", "is_available"}


def to_out(profile: ExpertProfile) -> dict:
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "full_name": profile.user.full_name,
        "avatar_url": profile.user.avatar_url,
        "title": profile.title,
        "description": profile.description,
        "expertise_areas": profile.expertise_areas or [],
        "hourly_rate": profile.hourly_rate,
        "subscription_type": profile.subscription_type,
        "is_available": profile.is_available,
        "rating": profile.rating,
        "total_reviews": profile.total_reviews,
    }


def _matches(profile: ExpertProfile, q: Optional[str], expertise: Optional[str]) -> bool:
    tags = [t.lower() for t in (profile.expertise_areas or [])]
    if expertise and expertise.lower() not in tags:
        return False
    if q:
        needle = q.lower()
        haystack = [profile.user.full_name, profile.title, profile.description or "", *tags]
        return any(needle in field.lower() for field in haystack)
    return True


@router.get("", response_model=list[ExpertOut])
def search_experts(
    q: Optional[str] = Query(default=None),
    expertise: Optional[str] = Query(default=None),
    min_rating: float = Query(default=0, ge=0),
    max_hourly_rate: Optional[float] = Query(default=None, ge=0),
    subscription_type: Optional[Literal["free", "premium"]] = Query(default=None),
    sort_by: Literal["rating", "price", "reviews", "newest"] = Query(default="rating"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """
    Browse available experts.
    Rating, price and tier filter in SQL; text and tag matching run on the
    result since tags live in a JSON column.
    """
    query = db.query(ExpertProfile).options(joinedload(ExpertProfile.user)).filter(
        ExpertProfile.is_available.is_(True)
    )
    if min_rating > 0:
        query = query.filter(ExpertProfile.rating >= min_rating)
    if max_hourly_rate is not None:
        query = query.filter(ExpertProfile.hourly_rate <= max_hourly_rate)
    if subscription_type:
        query = query.filter(ExpertProfile.subscription_type == subscription_type)

    column = SORT_COLUMNS[sort_by]
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), ExpertProfile.id)

    experts = [p for p in query.all() if _matches(p, q, expertise)]
    return [to_out(p) for p in experts[offset:offset + limit]]


@router.patch("/me", response_model=ExpertOut)
def update_my_profile(
    body: ExpertUpdateBody,
    expert: ExpertProfile = Depends(get_current_expert),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    full_name = changes.pop("full_name", None)
    if full_name:
        expert.user.full_name = full_name.strip()
    for field, value in changes.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(expert, field, value)
    db.commit()
    db.refresh(expert)
    logger.info("Expert %s updated profile fields %s", expert.id, sorted(body.model_fields_set))
    return to_out(expert)


@router.get("/{expert_id}", response_model=ExpertDetailOut)
def get_expert(
    expert_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Profile with the slots still open for booking over the next horizon."""
    profile = db.query(ExpertProfile).options(joinedload(ExpertProfile.user)).filter(
        ExpertProfile.id == expert_id
    ).first()
    if profile is None:
        raise NotFound("Expert not found", "expert-not-found")
    slots = bookable_slots(db, expert_id, now, settings.BOOKING_HORIZON_DAYS)
    return {**to_out(profile), "available_slots": [SlotOut.model_validate(s) for s in slots]}
