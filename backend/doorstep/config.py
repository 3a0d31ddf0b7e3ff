# backend/doorstep/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/doorstep.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///doorstep.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret expected in X-Admin-Token for admin endpoints
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "dev-admin-token-change-me")

    # Notification dispatch: background pool unless disabled (tests run inline)
    NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", True)
    NOTIFICATION_WORKERS = int(os.environ.get("NOTIFICATION_WORKERS", "2"))

    # Generator backfill guard
    MAX_BACKFILL_DAYS = int(os.environ.get("MAX_BACKFILL_DAYS", "31"))

    # Route estimate constants
    ROUTE_HANDLING_MINUTES_PER_STOP = float(os.environ.get("ROUTE_HANDLING_MINUTES_PER_STOP", "5"))
    ROUTE_AVERAGE_SPEED_KMH = float(os.environ.get("ROUTE_AVERAGE_SPEED_KMH", "30"))
    ROUTE_FALLBACK_LEG_KM = float(os.environ.get("ROUTE_FALLBACK_LEG_KM", "1"))
