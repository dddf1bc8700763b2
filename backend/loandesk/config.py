# backend/loandesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/loandesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///loandesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Credentials
    AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "loandesk.auth.token")
    AUTH_TOKEN_TTL_HOURS = int(os.environ.get("AUTH_TOKEN_TTL_HOURS", str(24 * 7)))

    # Kiosk unlock window, in minutes. Clamped at the /kiosk/unlock boundary.
    KIOSK_UNLOCK_DEFAULT_MINUTES = int(os.environ.get("KIOSK_UNLOCK_DEFAULT_MINUTES", "5"))
    KIOSK_UNLOCK_MAX_MINUTES = int(os.environ.get("KIOSK_UNLOCK_MAX_MINUTES", "30"))

    # Mutation event publisher
    EVENTS_ENABLED = _env_bool("EVENTS_ENABLED", True)
    EVENTS_MAX_QUEUE = int(os.environ.get("EVENTS_MAX_QUEUE", "1000"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    ]
