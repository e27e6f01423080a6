"""
CampShare — Centralized configuration.

Loads all settings from .env and validates them.
Every key is optional: missing provider credentials switch the SMS and
email services to their logging fallbacks.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Durable local storage (SQLite key/value file, or ":memory:")
    STORAGE_PATH: str = "data/campshare.db"

    # Reconciliation poll period and write debounce
    SYNC_INTERVAL_SECONDS: float = 60.0
    PERSIST_DEBOUNCE_SECONDS: float = 0.0

    # Twilio SMS (all three needed, otherwise messages are only logged)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # SendGrid email
    SENDGRID_API_KEY: str = ""
    SENDER_EMAIL: str = "noreply@campshare.app"
    SENDER_NAME: str = "Camp Share"
    SENDGRID_INVITATION_TEMPLATE_ID: str = ""
    SENDGRID_PASSWORD_RESET_TEMPLATE_ID: str = ""

    # Link placed in invitation emails
    APP_URL: str = "http://localhost:8080"

    TIMEZONE: str = "UTC"

    @field_validator("SYNC_INTERVAL_SECONDS", "PERSIST_DEBOUNCE_SECONDS", mode="before")
    @classmethod
    def parse_seconds(cls, v: str | float) -> float:
        if isinstance(v, str) and not v.strip():
            return 0.0
        value = float(v)
        if value < 0:
            raise ValueError("interval must not be negative")
        return value

    @property
    def sms_configured(self) -> bool:
        return bool(
            self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER
        )

    @property
    def email_configured(self) -> bool:
        return bool(self.SENDGRID_API_KEY)


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        STORAGE_PATH=os.getenv("STORAGE_PATH", "data/campshare.db"),
        SYNC_INTERVAL_SECONDS=os.getenv("SYNC_INTERVAL_SECONDS", "60"),
        PERSIST_DEBOUNCE_SECONDS=os.getenv("PERSIST_DEBOUNCE_SECONDS", "0"),
        TWILIO_ACCOUNT_SID=os.getenv("TWILIO_ACCOUNT_SID", ""),
        TWILIO_AUTH_TOKEN=os.getenv("TWILIO_AUTH_TOKEN", ""),
        TWILIO_PHONE_NUMBER=os.getenv("TWILIO_PHONE_NUMBER", ""),
        SENDGRID_API_KEY=os.getenv("SENDGRID_API_KEY", ""),
        SENDER_EMAIL=os.getenv("SENDER_EMAIL", "noreply@campshare.app"),
        SENDER_NAME=os.getenv("SENDER_NAME", "Camp Share"),
        SENDGRID_INVITATION_TEMPLATE_ID=os.getenv("SENDGRID_INVITATION_TEMPLATE_ID", ""),
        SENDGRID_PASSWORD_RESET_TEMPLATE_ID=os.getenv("SENDGRID_PASSWORD_RESET_TEMPLATE_ID", ""),
        APP_URL=os.getenv("APP_URL", "http://localhost:8080"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
