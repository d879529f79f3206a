# backend/labflow/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # SQLite DB stored in backend/instance/labflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///labflow.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sequence type used for per-tenant case numbers
    CASE_NUMBER_SEQUENCE = "case_number"

    # Bounded retry for storage contention (deadlocks, serialization failures)
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))

    # Best-effort notifications written after the workflow transaction commits
    NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)

    # Upper bound on cases returned to the board in one read
    KANBAN_MAX_CASES = 500

    # Browser origins allowed to call the API (comma-separated); empty disables CORS headers
    CORS_ALLOWED_ORIGINS = frozenset(
        o.strip() for o in os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",") if o.strip()
    )
