from datetime import datetime
from typing import Optional
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.exceptions import AccessDenied, NotAuthenticated
from app.models import ExpertProfile, User

bearer_scheme = HTTPBearer(auto_error=False)


def get_now() -> datetime:
    """Current naive UTC time; overridden in tests"""
    return datetime.utcnow()


def decode_access_token(token: str) -> Optional[str]:
    """Return the subject of a token issued by the auth provider, or None"""
    options = {"verify_aud": settings.AUTH_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except jwt.PyJWTError:
        return None
    return payload.get("sub")


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if credentials is None:
        return None
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise NotAuthenticated()
    return user


def get_current_expert(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ExpertProfile:
    profile = db.query(ExpertProfile).filter(ExpertProfile.user_id == user.id).first()
    if user.role != "expert" or profile is None:
        raise AccessDenied("Only experts can manage availability")
    return profile
