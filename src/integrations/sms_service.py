"""Twilio SMS integration — invitation and credential-reset texts.

Uses the Twilio Messages REST endpoint when TWILIO_ACCOUNT_SID,
TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER are all configured. Otherwise the
message is only logged and its content returned, so local runs never need
credentials.

Provider failures raise DispatchError; the caller decides how to surface them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from src.ports.invitation_port import DispatchError

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

_TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
_TIMEOUT_SECONDS = 10


def invitation_text(name: str, code: str) -> str:
    return (
        f"Hi {name}!\n\n"
        "You've been invited to join Camp Share.\n\n"
        f"Use this verification code to login: {code}\n\n"
        "This code is temporary and will expire after your first login."
    )


def reset_text(name: str, code: str) -> str:
    return (
        f"Hi {name}!\n\n"
        "We received a request to reset your Camp Share access.\n\n"
        f"Use this verification code to login: {code}\n\n"
        "If you didn't request this code, please ignore this message."
    )


class SmsService:
    """Twilio implementation of InvitationPort (recipient = phone number)."""

    def __init__(self, config: Settings | None = None) -> None:
        if config is None:
            from src.config import settings
            config = settings
        self._config = config

    @property
    def configured(self) -> bool:
        return self._config.sms_configured

    async def send_invitation(self, recipient: str, name: str, credential: str) -> str:
        return await self._send(recipient, invitation_text(name, credential))

    async def send_credential_reset(self, recipient: str, name: str, credential: str) -> str:
        return await self._send(recipient, reset_text(name, credential))

    async def _send(self, phone_number: str, body: str) -> str:
        """Send via Twilio; returns the message SID, or the body in fallback mode."""
        if not self.configured:
            logger.info("[SMS WOULD BE SENT TO %s]:\n%s", phone_number, body)
            return body

        sid = self._config.TWILIO_ACCOUNT_SID
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(
                    _TWILIO_MESSAGES_URL.format(sid=sid),
                    data={
                        "To": phone_number,
                        "From": self._config.TWILIO_PHONE_NUMBER,
                        "Body": body,
                    },
                    auth=(sid, self._config.TWILIO_AUTH_TOKEN),
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            logger.error("Error sending SMS to %s: %s", phone_number, exc)
            raise DispatchError(f"SMS to {phone_number} failed: {exc}") from exc

        message_sid = data.get("sid", "")
        logger.info("SMS sent to %s (sid %s)", phone_number, message_sid)
        return message_sid


async def send_invitation_sms(phone_number: str, name: str, code: str) -> str:
    """Send an invitation code to a new user's phone."""
    return await SmsService().send_invitation(phone_number, name, code)


async def send_password_reset_sms(phone_number: str, name: str, code: str) -> str:
    """Send a fresh login code to an existing user's phone."""
    return await SmsService().send_credential_reset(phone_number, name, code)
