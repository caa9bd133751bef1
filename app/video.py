from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import jwt
from app.config import settings


def create_room_token(
    room_name: str,
    participant_identity: str,
    participant_name: str,
    now: Optional[datetime] = None,
) -> str:
    """Sign a video-room access token for the hosted SFU"""
    issued_at = now or datetime.utcnow()
    claims: Dict[str, Any] = {
        "iss": settings.LIVEKIT_API_KEY,
        "sub": participant_identity,
        "name": participant_name,
        "nbf": issued_at,
        "exp": issued_at + timedelta(hours=settings.LIVEKIT_TOKEN_TTL_HOURS),
        "video": {
            "room": room_name,
            "roomJoin": True,
            "canPublish": True,
            "canSubscribe": True,
            "canPublishData": True,
            "canUpdateOwnMetadata": True,
        },
    }
    return jwt.encode(claims, settings.LIVEKIT_API_SECRET, algorithm="HS256")
