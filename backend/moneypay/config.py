# backend/moneypay/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/moneypay.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///moneypay.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Display label used in notification and SMS text
    CURRENCY_LABEL = os.environ.get("CURRENCY_LABEL", "SSP")

    # SMS delivery (disabled when credentials are missing)
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.environ.get("TWILIO_PHONE_NUMBER")

    # Post-commit side effects (SMS, broadcasts)
    SIDE_EFFECTS_SYNC = _env_bool("SIDE_EFFECTS_SYNC", False)
    SIDE_EFFECT_WORKERS = int(os.environ.get("SIDE_EFFECT_WORKERS", "4"))
    SIDE_EFFECT_TIMEOUT_SECONDS = float(os.environ.get("SIDE_EFFECT_TIMEOUT_SECONDS", "5"))

    # Optimistic-lock / deadlock retry policy for ledger operations
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))

    # Health check reports "degraded" above this many unresolved ledger intents
    OPEN_INTENT_WARNING = int(os.environ.get("OPEN_INTENT_WARNING", "25"))
