# backend/coreaccess/config.py
from __future__ import annotations
import os


def _parse_email_list(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/coreaccess.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///coreaccess.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("COREACCESS_LOG_LEVEL", "INFO")

    # Identities allowed to act on any tenant without a membership
    PLATFORM_ADMIN_EMAILS = _parse_email_list(os.environ.get("COREACCESS_PLATFORM_ADMINS"))

    # Advisory only; the hard limit check never reads this
    USAGE_WARNING_THRESHOLD = float(os.environ.get("USAGE_WARNING_THRESHOLD", "0.8"))

    TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", "14"))
    INVITATION_TTL_DAYS = int(os.environ.get("INVITATION_TTL_DAYS", "7"))

    # Idempotent re-delete attempts before a location delete is reported partial
    LOCATION_DELETE_ATTEMPTS = int(os.environ.get("LOCATION_DELETE_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    )
