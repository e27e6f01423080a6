"""
CampShare — Local State Synchronizer.

CampStore owns the canonical in-memory copy of the four primary collections
(events, maintenance tasks, cleaning tasks, users) and keeps it durable
through a StoragePort:

- load(): read every collection once; absent or unparseable content becomes
  an empty collection (users get two seed accounts instead). A failed read
  leaves both memory and storage untouched for that collection.
- mutations: applied in memory synchronously, then the whole collection is
  rewritten to storage (immediately, or debounced when a write delay is set).
- reconciliation: a repeating asyncio task re-reads every collection and
  replaces the in-memory copy wholesale when the read succeeds. Last read
  wins; a pending debounced write can be overwritten by an unlucky poll.

Nothing here raises past the store boundary for bad storage content: it is
logged and treated as "no update available".
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo
from typing import Any, TypeVar

from src.core.categories import get_category_color
from src.core.dates import strip_time
from src.data import schema
from src.data.models import (
    CLEANING_STATUSES,
    EVENT_CATEGORIES,
    MAX_PHOTOS,
    PERMISSIONS,
    PRIORITIES,
    TASK_STATUSES,
    CleaningTask,
    Event,
    MaintenanceTask,
    User,
)
from src.ports.storage_port import StorageError, StoragePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVENTS_KEY = "campshare-events"
MAINTENANCE_KEY = "campshare-maintenance"
CLEANING_KEY = "campshare-cleaning"
USERS_KEY = "campshare-users"
SESSION_USER_KEY = "campshare-current-user"

DEFAULT_SYNC_INTERVAL = 60.0


@dataclass(frozen=True)
class _Collection:
    name: str
    key: str
    loader: Callable[..., Any]
    dumper: Callable[[Any], dict]


_COLLECTIONS: tuple[_Collection, ...] = (
    _Collection("events", EVENTS_KEY, schema.event_from_dict, schema.event_to_dict),
    _Collection(
        "maintenance", MAINTENANCE_KEY,
        schema.maintenance_task_from_dict, schema.maintenance_task_to_dict,
    ),
    _Collection(
        "cleaning", CLEANING_KEY,
        schema.cleaning_task_from_dict, schema.cleaning_task_to_dict,
    ),
    _Collection("users", USERS_KEY, schema.user_from_dict, schema.user_to_dict),
)


def reconcile(current: list[T], loaded: list[T] | None) -> list[T]:
    """Merge policy for one reconciliation poll.

    ``loaded`` is the freshly read collection, or None when the read failed
    or the key is absent. A successful read replaces the in-memory copy
    wholesale; otherwise the current state is kept unchanged.
    """
    if loaded is None:
        return current
    return list(loaded)


def default_users(id_factory: Callable[[], str]) -> list[User]:
    return [
        User(
            id=id_factory(), name="Admin User",
            phone_number="+15551234567", permissions=["admin"],
        ),
        User(
            id=id_factory(), name="Regular User",
            phone_number="+15559876543", permissions=["read-only"],
        ),
    ]


def _check_choice(value: str, allowed: tuple[str, ...], field_name: str) -> None:
    if value not in allowed:
        raise ValueError(f"Invalid {field_name} {value!r}; expected one of {allowed}")


def _new_id() -> str:
    return str(uuid.uuid4())


class CampStore:
    """Process-wide store for events, tasks and users."""

    def __init__(
        self,
        storage: StoragePort,
        *,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        write_delay: float = 0.0,
        tz: tzinfo | None = None,
        id_factory: Callable[[], str] = _new_id,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._storage = storage
        self._sync_interval = sync_interval
        self._write_delay = write_delay
        self._tz = tz
        self._new_id = id_factory
        self._today = today
        self._now = now

        self._state: dict[str, list] = {c.name: [] for c in _COLLECTIONS}
        self._dirty: set[str] = set()
        self._flush_handle: asyncio.TimerHandle | None = None
        self._sync_task: asyncio.Task | None = None
        self._listeners: list[Callable[[str], None]] = []
        self.loaded = False

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def storage(self) -> StoragePort:
        return self._storage

    @property
    def tz(self) -> tzinfo | None:
        """Zone used to reduce aware timestamps to local calendar days."""
        return self._tz

    @property
    def events(self) -> list[Event]:
        return list(self._state["events"])

    @property
    def maintenance_tasks(self) -> list[MaintenanceTask]:
        return list(self._state["maintenance"])

    @property
    def cleaning_tasks(self) -> list[CleaningTask]:
        return list(self._state["cleaning"])

    @property
    def users(self) -> list[User]:
        return list(self._state["users"])

    def get_event(self, event_id: str) -> Event | None:
        return self._find("events", event_id)

    def get_maintenance_task(self, task_id: str) -> MaintenanceTask | None:
        return self._find("maintenance", task_id)

    def get_cleaning_task(self, task_id: str) -> CleaningTask | None:
        return self._find("cleaning", task_id)

    def get_user(self, user_id: str) -> User | None:
        return self._find("users", user_id)

    def find_user_by_phone(self, phone_number: str) -> User | None:
        for user in self._state["users"]:
            if user.phone_number == phone_number:
                return user
        return None

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Register ``callback(collection_name)`` for every change or reload."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Bootstrap every collection from storage.

        A collection whose read fails keeps its current (empty) state and is
        left untouched on disk; the next sync poll picks it up. Only users
        that are absent or unparseable get the seed accounts.
        """
        for coll in _COLLECTIONS:
            try:
                loaded = self._read(coll)
            except StorageError as exc:
                logger.error("Error reading %s from storage: %s", coll.key, exc)
                continue
            if loaded is None:
                if coll.name == "users":
                    loaded = default_users(self._new_id)
                    self._state["users"] = loaded
                    self._schedule_write("users")
                    logger.info("Seeded default users")
                    continue
                loaded = []
            self._state[coll.name] = loaded
        self.loaded = True
        logger.info(
            "Store loaded: %d events, %d maintenance, %d cleaning, %d users",
            len(self._state["events"]), len(self._state["maintenance"]),
            len(self._state["cleaning"]), len(self._state["users"]),
        )

    def sync_from_storage(self) -> list[str]:
        """Run one reconciliation poll. Returns the names of changed collections.

        Listeners only hear about collections whose content actually differs
        from the in-memory copy.
        """
        replaced: list[str] = []
        for coll in _COLLECTIONS:
            try:
                loaded = self._read(coll)
            except StorageError as exc:
                logger.error("Error reading %s from storage: %s", coll.key, exc)
                loaded = None
            current = self._state[coll.name]
            merged = reconcile(current, loaded)
            if merged != current:
                self._state[coll.name] = merged
                replaced.append(coll.name)
                self._notify(coll.name)
        logger.debug("Sync poll replaced: %s", replaced or "nothing")
        return replaced

    async def start_sync(self) -> None:
        """Start the periodic reconciliation task on the running loop."""
        if self._sync_task is not None and not self._sync_task.done():
            return
        self._sync_task = asyncio.create_task(self._sync_loop(), name="campshare-sync")
        logger.info("Sync loop started (every %.0fs)", self._sync_interval)

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sync_interval)
            try:
                self.sync_from_storage()
            except Exception as exc:
                logger.error("Sync poll failed: %s", exc)

    async def close(self) -> None:
        """Cancel the sync timer and write out any pending changes."""
        if self._sync_task is not None:
            self._sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sync_task
            self._sync_task = None
            logger.info("Sync loop stopped")
        self.flush()

    @property
    def syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    # ------------------------------------------------------------------
    # Persistence internals
    # ------------------------------------------------------------------

    def _read(self, coll: _Collection) -> list | None:
        """Decode one collection; None when absent or unparseable.

        StorageError propagates so callers can tell an unreachable backend
        from a missing key.
        """
        text = self._storage.get(coll.key)
        if text is None:
            return None
        try:
            return schema.decode_collection(text, coll.loader, self._tz)
        except (schema.SchemaError, KeyError, AttributeError, TypeError, ValueError) as exc:
            logger.error("Error parsing %s from storage: %s", coll.key, exc)
            return None

    def _write(self, name: str) -> None:
        coll = next(c for c in _COLLECTIONS if c.name == name)
        payload = schema.encode_collection(self._state[name], coll.dumper)
        try:
            self._storage.set(coll.key, payload)
        except StorageError as exc:
            logger.error("Error writing %s to storage: %s", coll.key, exc)
            return
        self._dirty.discard(name)

    def _schedule_write(self, name: str) -> None:
        self._dirty.add(name)
        if self._write_delay <= 0:
            self._write(name)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(name)
            return
        if self._flush_handle is None:
            self._flush_handle = loop.call_later(self._write_delay, self.flush)

    def flush(self) -> None:
        """Write every collection with unsaved changes."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        for name in sorted(self._dirty):
            self._write(name)

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._dirty)

    def _notify(self, name: str) -> None:
        for callback in self._listeners:
            try:
                callback(name)
            except Exception as exc:
                logger.error("Store listener failed for %s: %s", name, exc)

    def _commit(self, name: str, items: list) -> None:
        self._state[name] = items
        self._schedule_write(name)
        self._notify(name)

    def _find(self, name: str, item_id: str) -> Any:
        for item in self._state[name]:
            if item.id == item_id:
                return item
        return None

    def _replace(self, name: str, updated: Any) -> bool:
        """Full replace keyed by id. Unknown ids are a no-op."""
        items = self._state[name]
        if not any(item.id == updated.id for item in items):
            logger.debug("No %s item with id %s to update", name, updated.id)
            return False
        self._commit(name, [updated if item.id == updated.id else item for item in items])
        return True

    def _remove(self, name: str, item_id: str) -> Any:
        target = self._find(name, item_id)
        if target is None:
            return None
        self._commit(name, [item for item in self._state[name] if item.id != item_id])
        return target

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event(
        self,
        title: str,
        start_date: date | datetime | str,
        created_by: str,
        end_date: date | datetime | str | None = None,
        category: str = "other",
        color: str | None = None,
        description: str = "",
        arrival_time: str | None = None,
        departure_time: str | None = None,
        catering_needed: bool | None = None,
        catering_notes: str | None = None,
    ) -> Event:
        """Create an event with a fresh id. End date defaults to (and never precedes) start."""
        if not title or not title.strip():
            raise ValueError("Event title must not be empty")
        category = category or "other"
        _check_choice(category, EVENT_CATEGORIES, "category")
        start = strip_time(start_date, self._tz)
        end = strip_time(end_date, self._tz) if end_date is not None else start
        event = Event(
            id=self._new_id(),
            title=title.strip(),
            start_date=start,
            end_date=max(start, end),
            created_by=created_by,
            category=category,
            color=color or get_category_color(category),
            description=description or "",
            arrival_time=arrival_time or None,
            departure_time=departure_time or None,
            catering_needed=catering_needed,
            catering_notes=catering_notes,
        )
        self._commit("events", [*self._state["events"], event])
        logger.info("Event added: %s '%s' %s..%s", event.id, event.title, start, event.end_date)
        return event

    def update_event(self, event: Event) -> bool:
        _check_choice(event.category, EVENT_CATEGORIES, "category")
        if event.end_date < event.start_date:
            event = replace(event, end_date=event.start_date)
        return self._replace("events", event)

    def delete_event(self, event_id: str, acting_user_name: str | None = None) -> bool:
        """Delete an event by id.

        Without ``acting_user_name`` the delete is unconditional. With it, only
        the creator (matched by display name) may delete; anyone else leaves
        the collection untouched. Returns True only when an event was removed.
        """
        target = self._find("events", event_id)
        if target is None:
            return False
        if acting_user_name and target.created_by != acting_user_name:
            logger.info(
                "Delete of event %s by '%s' ignored (created by '%s')",
                event_id, acting_user_name, target.created_by,
            )
            return False
        self._remove("events", event_id)
        logger.info("Event deleted: %s '%s'", event_id, target.title)
        return True

    # ------------------------------------------------------------------
    # Maintenance tasks
    # ------------------------------------------------------------------

    def add_maintenance_task(
        self,
        title: str,
        priority: str = "medium",
        status: str = "pending",
        description: str = "",
        assigned_to: str | None = None,
        due_date: date | datetime | str | None = None,
        photos: list[str] | None = None,
    ) -> MaintenanceTask:
        if not title or not title.strip():
            raise ValueError("Task title must not be empty")
        _check_choice(priority, PRIORITIES, "priority")
        _check_choice(status, TASK_STATUSES, "status")
        photos = list(photos or [])
        if len(photos) > MAX_PHOTOS:
            raise ValueError(f"Maximum {MAX_PHOTOS} photos allowed")
        task = MaintenanceTask(
            id=self._new_id(),
            title=title.strip(),
            created_at=self._now(),
            priority=priority,
            status=status,
            description=description or "",
            assigned_to=assigned_to or None,
            due_date=strip_time(due_date, self._tz) if due_date is not None else None,
            photos=photos,
        )
        self._commit("maintenance", [*self._state["maintenance"], task])
        logger.info("Maintenance task added: %s '%s' (%s)", task.id, task.title, priority)
        return task

    def update_maintenance_task(self, task: MaintenanceTask) -> bool:
        """Full replace keyed by id; created_at always keeps its original value."""
        _check_choice(task.priority, PRIORITIES, "priority")
        _check_choice(task.status, TASK_STATUSES, "status")
        if len(task.photos) > MAX_PHOTOS:
            raise ValueError(f"Maximum {MAX_PHOTOS} photos allowed")
        existing = self.get_maintenance_task(task.id)
        if existing is None:
            return False
        return self._replace("maintenance", replace(task, created_at=existing.created_at))

    def set_maintenance_status(self, task_id: str, status: str) -> MaintenanceTask | None:
        _check_choice(status, TASK_STATUSES, "status")
        task = self.get_maintenance_task(task_id)
        if task is None:
            return None
        updated = replace(task, status=status)
        self._replace("maintenance", updated)
        return updated

    def assign_maintenance_task(self, task_id: str, user_id: str | None) -> MaintenanceTask | None:
        task = self.get_maintenance_task(task_id)
        if task is None:
            return None
        updated = replace(task, assigned_to=user_id or None)
        self._replace("maintenance", updated)
        return updated

    def delete_maintenance_task(self, task_id: str) -> MaintenanceTask | None:
        removed = self._remove("maintenance", task_id)
        if removed is not None:
            logger.info("Maintenance task deleted: %s '%s'", task_id, removed.title)
        return removed

    # ------------------------------------------------------------------
    # Cleaning tasks
    # ------------------------------------------------------------------

    def add_cleaning_task(
        self,
        area: str,
        description: str = "",
        status: str = "unclean",
        assigned_to: str | None = None,
    ) -> CleaningTask:
        if not area or not area.strip():
            raise ValueError("Cleaning area must not be empty")
        _check_choice(status, CLEANING_STATUSES, "status")
        task = CleaningTask(
            id=self._new_id(),
            area=area.strip(),
            status=status,
            description=description or "",
            assigned_to=assigned_to or None,
            last_cleaned=self._today() if status == "clean" else None,
        )
        self._commit("cleaning", [*self._state["cleaning"], task])
        logger.info("Cleaning task added: %s '%s'", task.id, task.area)
        return task

    def update_cleaning_task(self, task: CleaningTask) -> bool:
        _check_choice(task.status, CLEANING_STATUSES, "status")
        return self._replace("cleaning", task)

    def toggle_clean_status(self, task_id: str) -> CleaningTask | None:
        """Flip clean/unclean. Becoming clean stamps last_cleaned with today."""
        task = self.get_cleaning_task(task_id)
        if task is None:
            return None
        if task.status == "clean":
            updated = replace(task, status="unclean")
        else:
            updated = replace(task, status="clean", last_cleaned=self._today())
        self._replace("cleaning", updated)
        return updated

    def assign_cleaning_task(self, task_id: str, user_id: str | None) -> CleaningTask | None:
        task = self.get_cleaning_task(task_id)
        if task is None:
            return None
        updated = replace(task, assigned_to=user_id or None)
        self._replace("cleaning", updated)
        return updated

    def delete_cleaning_task(self, task_id: str) -> CleaningTask | None:
        return self._remove("cleaning", task_id)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(
        self,
        name: str,
        phone_number: str,
        permissions: list[str] | None = None,
        email: str | None = None,
    ) -> User:
        """Persist a new user record without any credential."""
        if not name or not name.strip():
            raise ValueError("User name must not be empty")
        if not phone_number or not phone_number.strip():
            raise ValueError("Phone number must not be empty")
        permissions = list(permissions or ["read-only"])
        for p in permissions:
            _check_choice(p, PERMISSIONS, "permission")
        user = User(
            id=self._new_id(),
            name=name.strip(),
            phone_number=phone_number.strip(),
            permissions=permissions,
            email=email or None,
            password_set=False,
        )
        self._commit("users", [*self._state["users"], user])
        logger.info("User added: %s '%s'", user.id, user.name)
        return user

    def update_user(self, user: User) -> bool:
        return self._replace("users", user)

    def set_temporary_code(self, user_id: str, code: str | None) -> User | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        updated = replace(user, temporary_code=code)
        self._replace("users", updated)
        return updated

    def update_user_permissions(self, user_id: str, permissions: list[str]) -> User | None:
        for p in permissions:
            _check_choice(p, PERMISSIONS, "permission")
        user = self.get_user(user_id)
        if user is None:
            return None
        updated = replace(user, permissions=list(permissions))
        self._replace("users", updated)
        logger.info("Permissions for %s set to %s", user_id, permissions)
        return updated

    def delete_user(self, user_id: str) -> User | None:
        removed = self._remove("users", user_id)
        if removed is not None:
            logger.info("User deleted: %s '%s'", user_id, removed.name)
        return removed
