"""
CampShare — Data Models.

Events, tasks and users are owned by the CampStore; notifications by the
NotificationStore. Cross-entity references (assigned_to, created_by) are
soft lookups by id or display name, never enforced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

EVENT_CATEGORIES = ("retreat", "camp", "day-off", "appointment", "other")
PRIORITIES = ("low", "medium", "high")
TASK_STATUSES = ("pending", "in-progress", "completed")
CLEANING_STATUSES = ("clean", "unclean")
PERMISSIONS = ("admin", "maintenance", "cleaning", "calendar", "chef", "read-only")
NOTIFICATION_TYPES = ("info", "warning", "error", "success")

MAX_PHOTOS = 5


@dataclass
class Event:
    """A calendar entry. Dates are whole days; end_date >= start_date."""

    id: str
    title: str
    start_date: date
    end_date: date
    created_by: str                   # display name of the creator
    category: str = "other"
    color: str = ""
    description: str = ""
    arrival_time: str | None = None   # HH:MM on start_date
    departure_time: str | None = None  # HH:MM on end_date
    catering_needed: bool | None = None
    catering_notes: str | None = None

    @property
    def is_multi_day(self) -> bool:
        return self.end_date > self.start_date


@dataclass
class MaintenanceTask:
    id: str
    title: str
    created_at: datetime
    priority: str = "medium"
    status: str = "pending"
    description: str = ""
    assigned_to: str | None = None    # user id
    due_date: date | None = None
    photos: list[str] = field(default_factory=list)  # data URLs


@dataclass
class CleaningTask:
    id: str
    area: str
    status: str = "unclean"
    description: str = ""
    assigned_to: str | None = None
    last_cleaned: date | None = None


@dataclass
class User:
    """A directory entry. phone_number is the login identity."""

    id: str
    name: str
    phone_number: str
    permissions: list[str] = field(default_factory=lambda: ["read-only"])
    email: str | None = None
    password_set: bool = False
    temporary_code: str | None = None

    def has_permission(self, *permissions: str) -> bool:
        return any(p in self.permissions for p in permissions)

    @property
    def is_admin(self) -> bool:
        return "admin" in self.permissions


@dataclass
class Notification:
    id: str
    title: str
    message: str
    timestamp: datetime
    type: str = "info"
    read: bool = False
    link: str | None = None
    for_permission: str | None = None  # visible only to holders of this permission
