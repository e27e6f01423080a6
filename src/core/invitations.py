"""Invitation dispatch — the follow-up step after a user record is written.

Creating a user and delivering their one-time credential are separate: the
service persists the user, then hands an InvitationCommand to the
dispatcher. Dispatch is fire-and-forget. A failed delivery is logged and
surfaced as a warning notification. It is never retried and never rolls
back the user record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.notifications import NotificationStore
    from src.ports.invitation_port import InvitationPort

logger = logging.getLogger(__name__)

CHANNELS = ("sms", "email")


@dataclass
class InvitationCommand:
    user_id: str
    name: str
    recipient: str          # phone number for sms, address for email
    credential: str
    channel: str = "sms"


@dataclass
class DispatchOutcome:
    command: InvitationCommand
    success: bool
    content: str = ""
    error: str = ""


class InvitationDispatcher:
    """Routes invitation commands to the SMS or email channel."""

    def __init__(
        self,
        sms: InvitationPort,
        email: InvitationPort,
        notifications: NotificationStore | None = None,
    ) -> None:
        self._ports = {"sms": sms, "email": email}
        self._notifications = notifications
        self._pending: set[asyncio.Task] = set()

    async def dispatch(self, command: InvitationCommand) -> DispatchOutcome:
        port = self._ports.get(command.channel)
        if port is None:
            return self._failed(command, f"Unknown channel {command.channel!r}")

        try:
            content = await port.send_invitation(
                command.recipient, command.name, command.credential,
            )
        except Exception as exc:
            return self._failed(command, str(exc))

        logger.info(
            "Invitation (%s) delivered to %s for user %s",
            command.channel, command.recipient, command.user_id,
        )
        return DispatchOutcome(command=command, success=True, content=content)

    def schedule(self, command: InvitationCommand) -> asyncio.Task:
        """Start dispatch in the background and return immediately."""
        task = asyncio.create_task(
            self.dispatch(command), name=f"invite-{command.user_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> list[DispatchOutcome]:
        """Wait for every in-flight dispatch (used on shutdown)."""
        if not self._pending:
            return []
        return list(await asyncio.gather(*self._pending))

    def _failed(self, command: InvitationCommand, error: str) -> DispatchOutcome:
        logger.error(
            "Failed to send invitation to %s via %s: %s",
            command.recipient, command.channel, error,
        )
        if self._notifications is not None:
            self._notifications.add(
                title="Invitation error",
                message=f"Could not send the invitation to {command.name}: {error}",
                type="warning",
                link="/users",
            )
        return DispatchOutcome(command=command, success=False, error=error)
