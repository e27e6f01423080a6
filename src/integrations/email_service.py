"""SendGrid email integration — invitation and password-reset emails.

Uses the SendGrid v3 mail/send endpoint when SENDGRID_API_KEY is set, with a
dynamic template when the matching template id is configured and static
HTML otherwise.

Gracefully degrades: without an API key, or when SendGrid rejects the
request, the email content is logged and returned instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

_SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
_TIMEOUT_SECONDS = 10


class EmailService:
    """SendGrid implementation of InvitationPort (recipient = email address)."""

    def __init__(self, config: Settings | None = None) -> None:
        if config is None:
            from src.config import settings
            config = settings
        self._config = config

    @property
    def configured(self) -> bool:
        return self._config.email_configured

    async def send_invitation(self, recipient: str, name: str, credential: str) -> str:
        login_url = f"{self._config.APP_URL.rstrip('/')}/login"
        text = (
            f"Hello {name},\n\n"
            "You have been invited to join Camp Share!\n\n"
            f"To get started, please visit: {login_url}\n\n"
            "Your login credentials:\n"
            f"Email: {recipient}\n"
            f"Temporary Password: {credential}\n\n"
            "For security reasons, please change your password after your first login."
        )
        html = (
            f"<p>Hello {name},</p>"
            "<p>You have been invited to join <strong>Camp Share</strong>!</p>"
            f"<p><a href=\"{login_url}\">Log in</a> with your temporary password: "
            f"<code>{credential}</code></p>"
        )
        return await self._send(
            recipient,
            subject="Welcome to Camp Share - Invitation",
            text=text,
            html=html,
            template_id=self._config.SENDGRID_INVITATION_TEMPLATE_ID,
            template_data={
                "name": name,
                "email": recipient,
                "temporaryPassword": credential,
                "loginUrl": login_url,
            },
        )

    async def send_credential_reset(self, recipient: str, name: str, credential: str) -> str:
        login_url = f"{self._config.APP_URL.rstrip('/')}/login"
        text = (
            f"Hello {name},\n\n"
            "We received a request to reset your Camp Share password.\n\n"
            f"Your new temporary password: {credential}\n\n"
            f"Log in at {login_url} and change it right away.\n\n"
            "If you didn't request this, please ignore this email."
        )
        html = (
            f"<p>Hello {name},</p>"
            "<p>We received a request to reset your Camp Share password.</p>"
            f"<p>Your new temporary password: <code>{credential}</code></p>"
        )
        return await self._send(
            recipient,
            subject="Camp Share - Password Reset",
            text=text,
            html=html,
            template_id=self._config.SENDGRID_PASSWORD_RESET_TEMPLATE_ID,
            template_data={
                "name": name,
                "temporaryPassword": credential,
                "loginUrl": login_url,
            },
        )

    def _payload(
        self, recipient: str, subject: str, text: str, html: str,
        template_id: str, template_data: dict,
    ) -> dict:
        payload: dict = {
            "from": {"email": self._config.SENDER_EMAIL, "name": self._config.SENDER_NAME},
            "subject": subject,
        }
        if template_id:
            logger.debug("Using dynamic template %s", template_id)
            payload["template_id"] = template_id
            payload["personalizations"] = [{
                "to": [{"email": recipient}],
                "dynamic_template_data": template_data,
            }]
        else:
            payload["personalizations"] = [{"to": [{"email": recipient}]}]
            payload["content"] = [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ]
        return payload

    async def _send(
        self, recipient: str, subject: str, text: str, html: str,
        template_id: str = "", template_data: dict | None = None,
    ) -> str:
        if self.configured:
            payload = self._payload(
                recipient, subject, text, html, template_id, template_data or {},
            )
            try:
                async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                    resp = await client.post(
                        _SENDGRID_SEND_URL,
                        json=payload,
                        headers={"Authorization": f"Bearer {self._config.SENDGRID_API_KEY}"},
                    )
                    resp.raise_for_status()
                logger.info("Email '%s' sent to %s", subject, recipient)
                return text
            except httpx.HTTPError as exc:
                logger.error("Failed to send email via SendGrid: %s", exc)
        else:
            logger.warning("No SendGrid API key configured, logging email instead")

        logger.info("[EMAIL TO %s] %s\n%s", recipient, subject, text)
        return text


async def send_invitation_email(address: str, name: str, credential: str) -> str:
    """Send an invitation with a temporary credential. Never raises for provider trouble."""
    return await EmailService().send_invitation(address, name, credential)


async def send_password_reset_email(address: str, name: str, credential: str) -> str:
    return await EmailService().send_credential_reset(address, name, credential)
