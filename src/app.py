"""
CampShare — Application wiring.

Builds the stores, services and collaborators from settings, and runs the
long-lived process: load state, start the reconciliation poll, wait until
asked to stop, then cancel the timer and flush pending writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo

from src.adapters.memory_storage import MemoryStorage
from src.adapters.sqlite_storage import SQLiteStorage
from src.config import Settings, settings
from src.core.auth import AuthService
from src.core.camp_service import CampService
from src.core.invitations import InvitationDispatcher
from src.core.recurrence import RetreatRecommendations
from src.data.notifications import NotificationStore
from src.data.store import CampStore
from src.integrations.email_service import EmailService
from src.integrations.sms_service import SmsService
from src.ports.storage_port import StoragePort

logger = logging.getLogger(__name__)


@dataclass
class App:
    store: CampStore
    notifications: NotificationStore
    service: CampService
    auth: AuthService
    recommendations: RetreatRecommendations
    dispatcher: InvitationDispatcher

    async def start(self) -> None:
        self.store.load()
        self.notifications.load()
        self.auth.restore()
        self.recommendations.refresh(date.today(), self.auth.current_user)
        await self.store.start_sync()

    async def stop(self) -> None:
        await self.dispatcher.drain()
        await self.store.close()


def create_storage(config: Settings) -> StoragePort:
    if config.STORAGE_PATH == ":memory:":
        return MemoryStorage()
    return SQLiteStorage(db_path=config.STORAGE_PATH)


def create_app(config: Settings | None = None, storage: StoragePort | None = None) -> App:
    config = config or settings
    storage = storage if storage is not None else create_storage(config)

    store = CampStore(
        storage,
        sync_interval=config.SYNC_INTERVAL_SECONDS,
        write_delay=config.PERSIST_DEBOUNCE_SECONDS,
        tz=ZoneInfo(config.TIMEZONE),
    )
    notifications = NotificationStore(storage)
    sms = SmsService(config)
    dispatcher = InvitationDispatcher(sms, EmailService(config), notifications)
    app = App(
        store=store,
        notifications=notifications,
        service=CampService(store, notifications, dispatcher),
        auth=AuthService(store, sms),
        recommendations=RetreatRecommendations(store, notifications),
        dispatcher=dispatcher,
    )

    def _on_change(collection: str) -> None:
        if collection == "events":
            app.recommendations.refresh(date.today(), app.auth.current_user)

    store.add_listener(_on_change)
    return app


async def run(stop_event: asyncio.Event | None = None) -> None:
    """Run until ``stop_event`` is set (or forever)."""
    app = create_app()
    await app.start()
    logger.info(
        "CampShare running (storage=%s, sms=%s, email=%s)",
        settings.STORAGE_PATH,
        "twilio" if settings.sms_configured else "log",
        "sendgrid" if settings.email_configured else "log",
    )
    stop_event = stop_event or asyncio.Event()
    try:
        await stop_event.wait()
    finally:
        await app.stop()
        logger.info("CampShare stopped")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
