"""
CampShare — Notification feed.

Persisted independently of the CampStore under its own key. Notifications
are created as side effects of other operations (task completed, catering
requested, ...) and only ever change their ``read`` flag afterwards.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from src.data import schema
from src.data.models import NOTIFICATION_TYPES, Notification, User
from src.ports.storage_port import StorageError, StoragePort

logger = logging.getLogger(__name__)

NOTIFICATIONS_KEY = "notifications"

_ID_ALPHABET = string.ascii_lowercase + string.digits

SAMPLE_NOTIFICATIONS: tuple[dict, ...] = (
    {
        "title": "Maintenance Required",
        "message": "Cabin #3 needs roof repair before next weekend",
        "type": "warning",
        "link": "/maintenance",
    },
    {
        "title": "Water System Check",
        "message": "Quarterly water system inspection is due this week",
        "type": "info",
        "link": "/maintenance",
    },
    {
        "title": "Cleaning Schedule Updated",
        "message": "New cleaning rotation has been posted for August",
        "type": "success",
        "link": "/cleaning",
    },
)


def _short_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))


class NotificationStore:
    """Newest-first list of notifications backed by a StoragePort."""

    def __init__(
        self,
        storage: StoragePort,
        *,
        id_factory: Callable[[], str] = _short_id,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._storage = storage
        self._new_id = id_factory
        self._now = now
        self._items: list[Notification] = []

    @property
    def notifications(self) -> list[Notification]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def load(self, seed: bool = True) -> None:
        """Read the feed; an empty first run is seeded with sample entries."""
        loaded: list[Notification] = []
        try:
            text = self._storage.get(NOTIFICATIONS_KEY)
            if text is not None:
                loaded = schema.decode_collection(text, schema.notification_from_dict)
        except (StorageError, schema.SchemaError) as exc:
            logger.error("Error loading notifications: %s", exc)
        self._items = loaded
        if not self._items and seed:
            for sample in SAMPLE_NOTIFICATIONS:
                self.add(**sample)
            logger.info("Seeded %d sample notifications", len(SAMPLE_NOTIFICATIONS))

    def _save(self) -> None:
        payload = schema.encode_collection(self._items, schema.notification_to_dict)
        try:
            self._storage.set(NOTIFICATIONS_KEY, payload)
        except StorageError as exc:
            logger.error("Error saving notifications: %s", exc)

    def add(
        self,
        title: str,
        message: str,
        type: str = "info",
        link: str | None = None,
        for_permission: str | None = None,
    ) -> Notification:
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"Invalid notification type {type!r}")
        notification = Notification(
            id=self._new_id(),
            title=title,
            message=message,
            timestamp=self._now(),
            type=type,
            read=False,
            link=link,
            for_permission=for_permission,
        )
        self._items = [notification, *self._items]
        self._save()
        logger.debug("Notification added: %s (%s)", title, type)
        return notification

    def add_chef_notification(
        self, title: str, message: str, type: str = "info", link: str | None = None,
    ) -> Notification:
        """Add a notification only users with the chef permission will see."""
        return self.add(title, message, type=type, link=link, for_permission="chef")

    def mark_as_read(self, notification_id: str) -> None:
        self._items = [
            replace(n, read=True) if n.id == notification_id else n
            for n in self._items
        ]
        self._save()

    def mark_all_as_read(self) -> None:
        self._items = [replace(n, read=True) for n in self._items]
        self._save()

    def remove(self, notification_id: str) -> None:
        self._items = [n for n in self._items if n.id != notification_id]
        self._save()

    def clear_all(self) -> None:
        self._items = []
        self._save()

    def visible_to(self, user: User | None) -> list[Notification]:
        """Notifications without a permission restriction, plus those the user holds."""
        return [
            n for n in self._items
            if n.for_permission is None
            or (user is not None and n.for_permission in user.permissions)
        ]
