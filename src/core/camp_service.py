"""
CampShare — UI-Agnostic Service Layer.

Orchestrates the CampStore and NotificationStore for every user-facing
operation: checks who may do what, clamps event dates, and emits the
notification side effects (high-priority task, task completed, catering
request, ...).

Authorization failures and unknown ids come back as ErrorResponse or
NoActionResponse objects. Nothing here raises for them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import TYPE_CHECKING

from src.core.categories import RESTRICTED_CATEGORIES
from src.core.credentials import generate_temporary_code, generate_temporary_password
from src.core.dates import strip_time
from src.core.invitations import CHANNELS, InvitationCommand
from src.data.models import MAX_PHOTOS, CleaningTask, Event, MaintenanceTask, User

if TYPE_CHECKING:
    from src.core.invitations import InvitationDispatcher
    from src.data.notifications import NotificationStore
    from src.data.store import CampStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    NO_ACTION = "no_action"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str

    @property
    def ok(self) -> bool:
        return self.kind is ResponseKind.SUCCESS


@dataclass
class SuccessResponse(ServiceResponse):
    event: Event | None = None
    task: MaintenanceTask | CleaningTask | None = None
    user: User | None = None
    dispatch: asyncio.Task | None = None   # in-flight invitation, if any


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class NoActionResponse(ServiceResponse):
    pass


def _error(message: str) -> ErrorResponse:
    return ErrorResponse(kind=ResponseKind.ERROR, message=message)


def _no_action(message: str) -> NoActionResponse:
    return NoActionResponse(kind=ResponseKind.NO_ACTION, message=message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_event_dates(
    start: date | datetime | str,
    end: date | datetime | str | None,
    multi_day: bool | None = None,
    tz: tzinfo | None = None,
) -> tuple[date, date]:
    """Strip times (in ``tz`` for aware timestamps) and clamp so that end >= start.

    A single-day event (``multi_day`` False, or no end given) always ends on
    its start date, whatever end date the editor was left holding.
    """
    start_d = strip_time(start, tz)
    if end is None or multi_day is False:
        return start_d, start_d
    end_d = strip_time(end, tz)
    return start_d, max(start_d, end_d)


def _short(d: date) -> str:
    return f"{d:%b} {d.day}"


def catering_message(event: Event) -> str:
    message = (
        f"New catering request for retreat \"{event.title}\" "
        f"from {_short(event.start_date)} to {_short(event.end_date)}, {event.end_date.year}"
    )
    if event.catering_notes:
        message += f": {event.catering_notes}"
    return message


def _can_manage_maintenance(actor: User | None) -> bool:
    return actor is not None and actor.has_permission("admin", "maintenance")


def _can_manage_cleaning(actor: User | None) -> bool:
    return actor is not None and actor.has_permission("admin", "cleaning")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CampService:
    """Stateless service over the stores; each UI calls this and renders the responses."""

    def __init__(
        self,
        store: CampStore,
        notifications: NotificationStore,
        dispatcher: InvitationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event(
        self,
        actor: User | None,
        title: str,
        start_date: date | datetime | str,
        end_date: date | datetime | str | None = None,
        multi_day: bool | None = None,
        category: str = "other",
        color: str | None = None,
        description: str = "",
        arrival_time: str | None = None,
        departure_time: str | None = None,
        catering_needed: bool = False,
        catering_notes: str = "",
    ) -> ServiceResponse:
        """Create an event. Camps and retreats are admin-only."""
        if category in RESTRICTED_CATEGORIES and (actor is None or not actor.is_admin):
            return _error("Only administrators can add camp and retreat events")

        try:
            start, end = normalize_event_dates(
                start_date, end_date, multi_day, tz=self._store.tz,
            )
        except ValueError as exc:
            return _error(f"Invalid date: {exc}")

        is_retreat = category == "retreat"
        wants_catering = is_retreat and bool(catering_needed)
        try:
            event = self._store.add_event(
                title=title,
                start_date=start,
                end_date=end,
                created_by=actor.name if actor else "Anonymous",
                category=category,
                color=color,
                description=description,
                arrival_time=arrival_time,
                departure_time=departure_time,
                catering_needed=bool(catering_needed) if is_retreat else None,
                catering_notes=(catering_notes or None) if wants_catering else None,
            )
        except ValueError as exc:
            return _error(str(exc))

        if wants_catering:
            self._notifications.add_chef_notification(
                title="Catering Request",
                message=catering_message(event),
                link="/calendar",
            )

        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Event \"{event.title}\" added",
            event=event,
        )

    def edit_event(
        self, actor: User | None, event: Event, multi_day: bool | None = None,
    ) -> ServiceResponse:
        """Full-replace update. Only the creator or an admin may edit."""
        existing = self._store.get_event(event.id)
        if existing is None:
            return _no_action(f"Event {event.id} no longer exists")
        if actor is None or (actor.name != existing.created_by and not actor.is_admin):
            return _error("Only the creator or an administrator can edit this event")
        if (
            event.category != existing.category
            and event.category in RESTRICTED_CATEGORIES
            and not actor.is_admin
        ):
            return _error("Only administrators can add camp and retreat events")

        start, end = normalize_event_dates(
            event.start_date, event.end_date, multi_day, tz=self._store.tz,
        )
        updated = replace(event, start_date=start, end_date=end)
        if updated.category != "retreat":
            updated = replace(updated, catering_needed=None, catering_notes=None)
        try:
            self._store.update_event(updated)
        except ValueError as exc:
            return _error(str(exc))

        if updated.catering_needed and not existing.catering_needed:
            self._notifications.add_chef_notification(
                title="Catering Request",
                message=catering_message(updated),
                link="/calendar",
            )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Event \"{updated.title}\" updated",
            event=updated,
        )

    def delete_event(self, actor: User | None, event_id: str) -> ServiceResponse:
        """Admins delete anything; everyone else only their own events."""
        existing = self._store.get_event(event_id)
        if existing is None:
            return _no_action(f"Event {event_id} no longer exists")
        if actor is None:
            return _error("You must be logged in to delete events")

        acting_name = None if actor.is_admin else actor.name
        if not self._store.delete_event(event_id, acting_user_name=acting_name):
            return _error("Only the creator or an administrator can delete this event")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Event \"{existing.title}\" deleted",
            event=existing,
        )

    # ------------------------------------------------------------------
    # Maintenance tasks
    # ------------------------------------------------------------------

    def add_maintenance_task(
        self,
        actor: User | None,
        title: str,
        description: str = "",
        priority: str = "medium",
        status: str = "pending",
        assigned_to: str | None = None,
        due_date: date | datetime | str | None = None,
        photos: list[str] | None = None,
    ) -> ServiceResponse:
        """Anyone may report a task; priority, assignee and due date need a manager."""
        if actor is None:
            return _error("You must be logged in to add tasks")
        if not _can_manage_maintenance(actor) and (
            priority != "medium" or assigned_to or due_date is not None
        ):
            return _error(
                "Only admins and maintenance managers can set priority, assignee or due date"
            )
        if photos and len(photos) > MAX_PHOTOS:
            return _error(f"Maximum {MAX_PHOTOS} photos allowed")

        try:
            task = self._store.add_maintenance_task(
                title=title,
                priority=priority,
                status=status,
                description=description,
                assigned_to=assigned_to,
                due_date=due_date,
                photos=photos,
            )
        except ValueError as exc:
            return _error(str(exc))

        if task.priority == "high":
            self._notifications.add(
                title="High Priority Task Added",
                message=f"New task added: {task.title}",
                type="warning",
                link="/maintenance",
            )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Task \"{task.title}\" added", task=task,
        )

    def update_maintenance_task(
        self, actor: User | None, task: MaintenanceTask,
    ) -> ServiceResponse:
        existing = self._store.get_maintenance_task(task.id)
        if existing is None:
            return _no_action(f"Task {task.id} no longer exists")
        if actor is None:
            return _error("You must be logged in to edit tasks")
        managed_changed = (
            task.priority != existing.priority
            or task.assigned_to != existing.assigned_to
            or task.due_date != existing.due_date
        )
        if managed_changed and not _can_manage_maintenance(actor):
            return _error(
                "Only admins and maintenance managers can change priority, assignee or due date"
            )
        try:
            self._store.update_maintenance_task(task)
        except ValueError as exc:
            return _error(str(exc))

        self._notifications.add(
            title="Task Updated",
            message=f"Maintenance task \"{task.title}\" has been updated",
            type="info",
            link="/maintenance",
        )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Task \"{task.title}\" updated",
            task=self._store.get_maintenance_task(task.id),
        )

    def set_task_status(
        self, actor: User | None, task_id: str, status: str,
    ) -> ServiceResponse:
        if actor is None:
            return _error("You must be logged in to update tasks")
        try:
            task = self._store.set_maintenance_status(task_id, status)
        except ValueError as exc:
            return _error(str(exc))
        if task is None:
            return _no_action(f"Task {task_id} no longer exists")

        if status == "completed":
            self._notifications.add(
                title="Task Completed",
                message=f"Maintenance task \"{task.title}\" has been marked as completed",
                type="success",
                link="/maintenance",
            )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Task \"{task.title}\" is {status}", task=task,
        )

    def assign_task(
        self, actor: User | None, task_id: str, user_id: str | None,
    ) -> ServiceResponse:
        if not _can_manage_maintenance(actor):
            return _error("Only admins and maintenance managers can assign tasks")
        task = self._store.assign_maintenance_task(task_id, user_id)
        if task is None:
            return _no_action(f"Task {task_id} no longer exists")

        assignee = self._store.get_user(user_id) if user_id else None
        if assignee is not None:
            self._notifications.add(
                title="Task Assigned",
                message=f"Task \"{task.title}\" has been assigned to {assignee.name}",
                type="info",
                link="/maintenance",
            )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Task \"{task.title}\" assigned", task=task,
        )

    def delete_maintenance_task(self, actor: User | None, task_id: str) -> ServiceResponse:
        if not _can_manage_maintenance(actor):
            return _error("Only admins and maintenance managers can delete tasks")
        removed = self._store.delete_maintenance_task(task_id)
        if removed is None:
            return _no_action(f"Task {task_id} no longer exists")

        self._notifications.add(
            title="Task Removed",
            message=f"Maintenance task \"{removed.title}\" has been deleted",
            type="info",
            link="/maintenance",
        )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Task \"{removed.title}\" deleted", task=removed,
        )

    # ------------------------------------------------------------------
    # Cleaning tasks
    # ------------------------------------------------------------------

    def add_cleaning_task(
        self, actor: User | None, area: str, description: str = "",
    ) -> ServiceResponse:
        if not _can_manage_cleaning(actor):
            return _error("Only admins and cleaning managers can add cleaning areas")
        try:
            task = self._store.add_cleaning_task(area=area, description=description)
        except ValueError as exc:
            return _error(str(exc))
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Area \"{task.area}\" added", task=task,
        )

    def toggle_clean_status(self, actor: User | None, task_id: str) -> ServiceResponse:
        if actor is None:
            return _error("You must be logged in to update cleaning status")
        task = self._store.toggle_clean_status(task_id)
        if task is None:
            return _no_action(f"Cleaning task {task_id} no longer exists")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"\"{task.area}\" is {task.status}", task=task,
        )

    def assign_cleaning_task(
        self, actor: User | None, task_id: str, user_id: str | None,
    ) -> ServiceResponse:
        if not _can_manage_cleaning(actor):
            return _error("Only admins and cleaning managers can assign cleaning tasks")
        task = self._store.assign_cleaning_task(task_id, user_id)
        if task is None:
            return _no_action(f"Cleaning task {task_id} no longer exists")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"\"{task.area}\" assigned", task=task,
        )

    def delete_cleaning_task(self, actor: User | None, task_id: str) -> ServiceResponse:
        if not _can_manage_cleaning(actor):
            return _error("Only admins and cleaning managers can delete cleaning areas")
        removed = self._store.delete_cleaning_task(task_id)
        if removed is None:
            return _no_action(f"Cleaning task {task_id} no longer exists")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"\"{removed.area}\" deleted", task=removed,
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def invite_user(
        self,
        actor: User | None,
        name: str,
        phone_number: str,
        permissions: list[str] | None = None,
        email: str | None = None,
        channel: str = "sms",
    ) -> ServiceResponse:
        """Add a user and send their one-time credential.

        The user record is written first and stays even if delivery later
        fails. Delivery runs in the background; ``response.dispatch`` is the
        in-flight task.
        """
        if actor is None or not actor.is_admin:
            return _error("Only administrators can add users")
        if channel not in CHANNELS:
            return _error(f"Unknown invitation channel {channel!r}")
        if channel == "email" and not email:
            return _error("An email address is required for email invitations")
        if self._store.find_user_by_phone(phone_number.strip()) is not None:
            return _error("Phone number already in use")

        try:
            user = self._store.add_user(
                name=name, phone_number=phone_number,
                permissions=permissions, email=email,
            )
        except ValueError as exc:
            return _error(str(exc))

        credential = (
            generate_temporary_password() if channel == "email" else generate_temporary_code()
        )
        user = self._store.set_temporary_code(user.id, credential) or user

        dispatch = self._schedule(InvitationCommand(
            user_id=user.id,
            name=user.name,
            recipient=email if channel == "email" else user.phone_number,
            credential=credential,
            channel=channel,
        ))
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"{user.name} has been invited to join Camp Share.",
            user=user,
            dispatch=dispatch,
        )

    async def resend_code(self, actor: User | None, user_id: str) -> ServiceResponse:
        """Issue a fresh one-time code by SMS."""
        if actor is None or not actor.is_admin:
            return _error("Only administrators can resend invitations")
        code = generate_temporary_code()
        user = self._store.set_temporary_code(user_id, code)
        if user is None:
            return _no_action(f"User {user_id} no longer exists")

        dispatch = self._schedule(InvitationCommand(
            user_id=user.id,
            name=user.name,
            recipient=user.phone_number,
            credential=code,
            channel="sms",
        ))
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"A new code has been sent to {user.name}.",
            user=user,
            dispatch=dispatch,
        )

    def update_permissions(
        self, actor: User | None, user_id: str, permissions: list[str],
    ) -> ServiceResponse:
        if actor is None or not actor.is_admin:
            return _error("Only administrators can change permissions")
        try:
            user = self._store.update_user_permissions(user_id, permissions)
        except ValueError as exc:
            return _error(str(exc))
        if user is None:
            return _no_action(f"User {user_id} no longer exists")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"Permissions updated for {user.name}", user=user,
        )

    def delete_user(self, actor: User | None, user_id: str) -> ServiceResponse:
        if actor is None or not actor.is_admin:
            return _error("Only administrators can delete users")
        if actor.id == user_id:
            return _error("You cannot delete your own account")
        removed = self._store.delete_user(user_id)
        if removed is None:
            return _no_action(f"User {user_id} no longer exists")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f"{removed.name} removed", user=removed,
        )

    def _schedule(self, command: InvitationCommand) -> asyncio.Task | None:
        if self._dispatcher is None:
            logger.warning("No invitation dispatcher configured; %s not notified", command.name)
            return None
        return self._dispatcher.schedule(command)
