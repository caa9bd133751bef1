from datetime import time
from typing import List, Optional, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Expert Consultation Booking API"
    DATABASE_URL: str = "sqlite:///./consultations.db"
    SKIP_DB_INIT: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Tokens issued by the hosted auth provider
    AUTH_JWT_SECRET: str = "dev-auth-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = None

    # Video provider
    LIVEKIT_API_KEY: str = "devkey"
    LIVEKIT_API_SECRET: str = "secret"
    LIVEKIT_TOKEN_TTL_HOURS: int = 24

    # Calendar (weekday 0 = Monday)
    BUSINESS_DAYS: List[int] = [0, 1, 2, 3, 4]
    BUSINESS_HOURS_START: time = time(9, 0)
    BUSINESS_HOURS_END: time = time(18, 0)
    BOOKING_HORIZON_DAYS: int = 30

    CALL_COMPLETION_MIN_SECONDS: int = 60

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
