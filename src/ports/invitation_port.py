"""Invitation port — abstract interface for delivering one-time credentials.

Implemented by the SMS and email services. Each call returns the delivered
content (or a provider message id) and raises DispatchError on failure.
"""

from __future__ import annotations

from typing import Protocol


class DispatchError(Exception):
    """Raised when an SMS or email provider rejects or fails a delivery."""


class InvitationPort(Protocol):
    """A channel that can deliver invitations and credential resets."""

    async def send_invitation(self, recipient: str, name: str, credential: str) -> str: ...

    async def send_credential_reset(self, recipient: str, name: str, credential: str) -> str: ...
