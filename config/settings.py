import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "off", "no"}


@dataclass(frozen=True)
class Settings:
    SECRET_KEY: str
    DATABASE_URL: str | None
    SESSION_COOKIE_SECURE: bool
    MAX_UPLOAD_SIZE_MB: int
    SUBMISSIONS_LIMIT: int
    LOG_LEVEL: str


def get_settings() -> Settings:
    return Settings(
        SECRET_KEY=os.getenv("SECRET_KEY", "dev-insecure-key"),
        DATABASE_URL=os.getenv("DATABASE_URL"),
        SESSION_COOKIE_SECURE=_env_bool("SESSION_COOKIE_SECURE", True),
        MAX_UPLOAD_SIZE_MB=int(os.getenv("MAX_UPLOAD_SIZE_MB", "2")),
        SUBMISSIONS_LIMIT=int(os.getenv("SUBMISSIONS_LIMIT", "300")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
