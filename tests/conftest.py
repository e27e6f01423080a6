"""Shared test fixtures and configuration.

Sets up environment variables before any src imports so settings never pick
up real provider credentials, and provides in-memory stores and users.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("STORAGE_PATH", ":memory:")
os.environ.setdefault("SYNC_INTERVAL_SECONDS", "60")
os.environ.setdefault("TIMEZONE", "UTC")
for _key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER", "SENDGRID_API_KEY"):
    os.environ[_key] = ""

from datetime import date, datetime

import pytest


FIXED_TODAY = date(2024, 8, 15)
FIXED_NOW = datetime(2024, 8, 15, 9, 30)


@pytest.fixture
def storage():
    """A fresh in-memory StoragePort."""
    from src.adapters.memory_storage import MemoryStorage
    return MemoryStorage()


@pytest.fixture
def store(storage):
    """A loaded CampStore with a fixed clock, writing straight through."""
    from src.data.store import CampStore
    s = CampStore(storage, today=lambda: FIXED_TODAY, now=lambda: FIXED_NOW)
    s.load()
    return s


@pytest.fixture
def notifications(storage):
    """A NotificationStore without the sample seed entries."""
    from src.data.notifications import NotificationStore
    n = NotificationStore(storage, now=lambda: FIXED_NOW)
    n.load(seed=False)
    return n


@pytest.fixture
def admin(store):
    return next(u for u in store.users if u.is_admin)


@pytest.fixture
def regular(store):
    return next(u for u in store.users if not u.is_admin)


@pytest.fixture
def make_user(store):
    """Add a user with the given permissions and return it."""
    def _make(name, permissions, phone=None):
        return store.add_user(
            name=name,
            phone_number=phone or f"+1555{abs(hash(name)) % 10_000_000:07d}",
            permissions=permissions,
        )
    return _make
