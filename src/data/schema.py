"""
CampShare — Persisted record schema.

Collections are stored as JSON arrays using the camelCase keys the browser
application wrote (startDate, createdBy, phoneNumber, ...), so existing data
stays readable.

Loading goes through explicit migrations: each legacy shape has its own
function that rewrites a raw dict into the current shape. The migrated dict
is then validated by a pydantic record model (camelCase aliases, dates
reduced to local days) and built into a fully-defaulted dataclass.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, tzinfo
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, ValidationInfo

from src.core.categories import get_category_color
from src.core.dates import strip_time
from src.data.models import CleaningTask, Event, MaintenanceTask, Notification, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SchemaError(ValueError):
    """Raised when persisted content cannot be turned into records."""


# ---------------------------------------------------------------------------
# Legacy-shape migrations
# ---------------------------------------------------------------------------


def migrate_single_date(raw: dict) -> dict:
    """Oldest events carried one ``date`` used as both start and end."""
    if "date" in raw:
        raw = dict(raw)
        legacy = raw.pop("date")
        raw.setdefault("startDate", legacy)
        raw.setdefault("endDate", legacy)
    return raw


def migrate_missing_category(raw: dict) -> dict:
    """Events written before categories existed default to 'other'."""
    if not raw.get("category"):
        raw = {**raw, "category": "other"}
    return raw


def migrate_missing_color(raw: dict) -> dict:
    """Events without a stored color take their category color."""
    if not raw.get("color"):
        raw = {**raw, "color": get_category_color(raw.get("category"))}
    return raw


def migrate_temporary_password(raw: dict) -> dict:
    """Email invitations used to store ``temporaryPassword``; it is now the one-time code."""
    if "temporaryPassword" in raw:
        raw = dict(raw)
        legacy = raw.pop("temporaryPassword")
        if not raw.get("temporaryCode"):
            raw["temporaryCode"] = legacy
    return raw


EVENT_MIGRATIONS: tuple[Callable[[dict], dict], ...] = (
    migrate_single_date,
    migrate_missing_category,
    migrate_missing_color,
)

USER_MIGRATIONS: tuple[Callable[[dict], dict], ...] = (
    migrate_temporary_password,
)


def _apply(raw: Any, migrations: tuple[Callable[[dict], dict], ...]) -> dict:
    if not isinstance(raw, dict):
        raise SchemaError(f"Expected an object, got {type(raw).__name__}")
    for migrate in migrations:
        raw = migrate(raw)
    return raw


# ---------------------------------------------------------------------------
# Stored record models
# ---------------------------------------------------------------------------


def _stored_id(value: Any) -> str:
    if value is None or value == "":
        raise ValueError("id must not be empty")
    return str(value)


def _local_date(value: Any, info: ValidationInfo) -> date:
    tz = (info.context or {}).get("tz")
    return strip_time(value, tz)


def _optional_local_date(value: Any, info: ValidationInfo) -> date | None:
    if value in (None, ""):
        return None
    return _local_date(value, info)


StoredId = Annotated[str, BeforeValidator(_stored_id)]
LocalDate = Annotated[date, BeforeValidator(_local_date)]
OptionalLocalDate = Annotated[date | None, BeforeValidator(_optional_local_date)]


class EventRecord(BaseModel):
    """Stored event after migrations.

    JSON example:
    {"id": "…", "title": "Staff Retreat", "startDate": "2024-08-10",
     "endDate": "2024-08-13", "createdBy": "Alice", "category": "retreat",
     "color": "#e91e63", "cateringNeeded": true}
    """

    id: StoredId
    title: str | None = ""
    start_date: LocalDate = Field(alias="startDate")
    end_date: OptionalLocalDate = Field(default=None, alias="endDate")
    created_by: str | None = Field(default="", alias="createdBy")
    category: str
    color: str
    description: str | None = ""
    arrival_time: str | None = Field(default=None, alias="arrivalTime")
    departure_time: str | None = Field(default=None, alias="departureTime")
    catering_needed: bool | None = Field(default=None, alias="cateringNeeded")
    catering_notes: str | None = Field(default=None, alias="cateringNotes")


class MaintenanceTaskRecord(BaseModel):
    id: StoredId
    title: str | None = ""
    created_at: datetime = Field(alias="createdAt")
    priority: str | None = None
    status: str | None = None
    description: str | None = ""
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    due_date: OptionalLocalDate = Field(default=None, alias="dueDate")
    photos: list[str] | None = None


class CleaningTaskRecord(BaseModel):
    id: StoredId
    area: str | None = ""
    status: str | None = None
    description: str | None = ""
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    last_cleaned: OptionalLocalDate = Field(default=None, alias="lastCleaned")


class UserRecord(BaseModel):
    id: StoredId
    name: str | None = ""
    phone_number: str | None = Field(default="", alias="phoneNumber")
    permissions: list[str] | None = None
    email: str | None = None
    password_set: bool | None = Field(default=False, alias="passwordSet")
    temporary_code: str | None = Field(default=None, alias="temporaryCode")


class NotificationRecord(BaseModel):
    id: StoredId
    title: str | None = ""
    message: str | None = ""
    timestamp: datetime
    type: str | None = None
    read: bool | None = False
    link: str | None = None
    for_permission: str | None = Field(default=None, alias="forPermission")


R = TypeVar("R", bound=BaseModel)


def _validate(model: type[R], raw: dict, tz: tzinfo | None) -> R:
    try:
        return model.model_validate(raw, context={"tz": tz})
    except ValidationError as exc:
        raise SchemaError(f"Invalid {model.__name__}: {exc}") from exc


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def event_from_dict(raw: Any, tz: tzinfo | None = None) -> Event:
    rec = _validate(EventRecord, _apply(raw, EVENT_MIGRATIONS), tz)
    end = rec.end_date or rec.start_date
    return Event(
        id=rec.id,
        title=rec.title or "",
        start_date=rec.start_date,
        end_date=max(rec.start_date, end),
        created_by=rec.created_by or "",
        category=rec.category,
        color=rec.color,
        description=rec.description or "",
        arrival_time=rec.arrival_time or None,
        departure_time=rec.departure_time or None,
        catering_needed=rec.catering_needed,
        catering_notes=rec.catering_notes,
    )


def event_to_dict(event: Event) -> dict:
    return _drop_none({
        "id": event.id,
        "title": event.title,
        "startDate": event.start_date.isoformat(),
        "endDate": event.end_date.isoformat(),
        "arrivalTime": event.arrival_time,
        "departureTime": event.departure_time,
        "description": event.description,
        "createdBy": event.created_by,
        "color": event.color,
        "category": event.category,
        "cateringNeeded": event.catering_needed,
        "cateringNotes": event.catering_notes,
    })


# ---------------------------------------------------------------------------
# Maintenance / cleaning tasks
# ---------------------------------------------------------------------------


def maintenance_task_from_dict(raw: Any, tz: tzinfo | None = None) -> MaintenanceTask:
    rec = _validate(MaintenanceTaskRecord, _apply(raw, ()), tz)
    return MaintenanceTask(
        id=rec.id,
        title=rec.title or "",
        created_at=rec.created_at,
        priority=rec.priority or "medium",
        status=rec.status or "pending",
        description=rec.description or "",
        assigned_to=rec.assigned_to or None,
        due_date=rec.due_date,
        photos=list(rec.photos or []),
    )


def maintenance_task_to_dict(task: MaintenanceTask) -> dict:
    return _drop_none({
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority,
        "status": task.status,
        "assignedTo": task.assigned_to,
        "createdAt": task.created_at.isoformat(),
        "dueDate": _iso(task.due_date),
        "photos": list(task.photos),
    })


def cleaning_task_from_dict(raw: Any, tz: tzinfo | None = None) -> CleaningTask:
    rec = _validate(CleaningTaskRecord, _apply(raw, ()), tz)
    return CleaningTask(
        id=rec.id,
        area=rec.area or "",
        status=rec.status or "unclean",
        description=rec.description or "",
        assigned_to=rec.assigned_to or None,
        last_cleaned=rec.last_cleaned,
    )


def cleaning_task_to_dict(task: CleaningTask) -> dict:
    return _drop_none({
        "id": task.id,
        "area": task.area,
        "description": task.description,
        "status": task.status,
        "assignedTo": task.assigned_to,
        "lastCleaned": _iso(task.last_cleaned),
    })


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def user_from_dict(raw: Any, tz: tzinfo | None = None) -> User:
    rec = _validate(UserRecord, _apply(raw, USER_MIGRATIONS), tz)
    return User(
        id=rec.id,
        name=rec.name or "",
        phone_number=rec.phone_number or "",
        permissions=list(rec.permissions or ["read-only"]),
        email=rec.email or None,
        password_set=bool(rec.password_set),
        temporary_code=rec.temporary_code or None,
    )


def user_to_dict(user: User) -> dict:
    return _drop_none({
        "id": user.id,
        "name": user.name,
        "phoneNumber": user.phone_number,
        "email": user.email,
        "permissions": list(user.permissions),
        "passwordSet": user.password_set,
        "temporaryCode": user.temporary_code,
    })


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def notification_from_dict(raw: Any, tz: tzinfo | None = None) -> Notification:
    rec = _validate(NotificationRecord, _apply(raw, ()), tz)
    return Notification(
        id=rec.id,
        title=rec.title or "",
        message=rec.message or "",
        timestamp=rec.timestamp,
        type=rec.type or "info",
        read=bool(rec.read),
        link=rec.link or None,
        for_permission=rec.for_permission or None,
    )


def notification_to_dict(notification: Notification) -> dict:
    return _drop_none({
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "timestamp": notification.timestamp.isoformat(),
        "read": notification.read,
        "type": notification.type,
        "link": notification.link,
        "forPermission": notification.for_permission,
    })


# ---------------------------------------------------------------------------
# Whole collections
# ---------------------------------------------------------------------------


def decode_collection(
    text: str, loader: Callable[..., T], tz: tzinfo | None = None,
) -> list[T]:
    """Parse a stored JSON array into records. Raises SchemaError on any defect."""
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise SchemaError(f"Malformed JSON: {exc}") from exc
    if not isinstance(data, list):
        raise SchemaError(f"Expected a JSON array, got {type(data).__name__}")
    return [loader(item, tz) for item in data]


def encode_collection(items: list[T], dumper: Callable[[T], dict]) -> str:
    return json.dumps([dumper(item) for item in items], ensure_ascii=False)


def decode_record(text: str, loader: Callable[..., T], tz: tzinfo | None = None) -> T:
    """Parse a single stored JSON object (e.g. the session user)."""
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise SchemaError(f"Malformed JSON: {exc}") from exc
    return loader(data, tz)


def encode_record(item: T, dumper: Callable[[T], dict]) -> str:
    return json.dumps(dumper(item), ensure_ascii=False)
