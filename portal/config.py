"""Runtime configuration for the portal, read from the environment."""
import os
from typing import NamedTuple, List


class Settings(NamedTuple):
    database_url: str
    session_secret: str
    session_cookie_name: str
    session_ttl_seconds: int
    cookie_secure: bool
    port: int
    log_level: str
    cors_origins: List[str]


def _truthy(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./portal.db"),
        session_secret=os.getenv("SESSION_SECRET", "dev-secret"),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "connect.sid"),
        session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24))),
        cookie_secure=_truthy(os.getenv("COOKIE_SECURE", "0")),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )


state = load_settings()


def get_settings() -> Settings:
    return state
