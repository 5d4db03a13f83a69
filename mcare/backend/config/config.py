import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Settings read straight from environment variables.
    """
    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL")

    # Redis: user sessions and the rate limiter use separate databases
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL")

    # JWT and sessions
    SECRET_KEY: str = os.environ.get("SECRET_KEY")
    ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
    SESSION_TTL_SECONDS: int = int(os.environ.get("SESSION_TTL_SECONDS", 60 * 60 * 24))

    # Public URL embedded in every QR code
    BASE_URL: str = os.environ.get("BASE_URL", "http://localhost:8000")
    FRONTEND_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.environ.get("FRONTEND_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]

    # Transactional email API
    MAIL_API_URL: str = os.environ.get("MAIL_API_URL")
    MAIL_API_KEY: str = os.environ.get("MAIL_API_KEY")
    MAIL_FROM: str = os.environ.get("MAIL_FROM", "MCare <no-reply@mcare.local>")
    MAIL_BATCH_SEND: bool = _as_bool(os.environ.get("MAIL_BATCH_SEND"))

    # Daily duty reminder, local wall-clock "HH:MM"
    REMINDER_TIME: str = os.environ.get("REMINDER_TIME", "18:00")
    # IANA zone name used for calendar-day math; empty means process-local time
    TIMEZONE: Optional[str] = os.environ.get("TIMEZONE") or None


settings = Config()
