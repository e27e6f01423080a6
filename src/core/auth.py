"""
CampShare — Session handling.

Phone number is the login identity and a one-time code is the credential.
Codes live in plaintext on the user record: this is a convenience login for
a trusted group, not a security boundary.

Every failure is reported through ``AuthState.error``. Nothing here raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from src.core.credentials import generate_temporary_code
from src.data import schema
from src.data.store import SESSION_USER_KEY
from src.ports.storage_port import StorageError

if TYPE_CHECKING:
    from src.data.models import User
    from src.data.store import CampStore
    from src.ports.invitation_port import InvitationPort

logger = logging.getLogger(__name__)


@dataclass
class AuthState:
    is_authenticated: bool = False
    current_user: User | None = None
    is_loading: bool = True
    error: str | None = None


class AuthService:
    """Login / register / logout / profile for the current session."""

    def __init__(self, store: CampStore, sms: InvitationPort | None = None) -> None:
        self._store = store
        self._sms = sms
        self.state = AuthState()

    @property
    def current_user(self) -> User | None:
        return self.state.current_user

    def restore(self) -> AuthState:
        """Pick up the persisted session user, if any."""
        try:
            text = self._store.storage.get(SESSION_USER_KEY)
        except StorageError as exc:
            logger.error("Error reading session: %s", exc)
            text = None

        if text is None:
            self.state = AuthState(is_loading=False)
            return self.state
        try:
            user = schema.decode_record(text, schema.user_from_dict)
        except schema.SchemaError as exc:
            logger.error("Error parsing session user: %s", exc)
            self.state = AuthState(
                is_loading=False, error="Session expired, please log in again",
            )
            return self.state

        self.state = AuthState(is_authenticated=True, current_user=user, is_loading=False)
        logger.info("Session restored for %s", user.name)
        return self.state

    def _set_session(self, user: User | None) -> None:
        try:
            if user is None:
                self._store.storage.remove(SESSION_USER_KEY)
            else:
                self._store.storage.set(
                    SESSION_USER_KEY, schema.encode_record(user, schema.user_to_dict),
                )
        except StorageError as exc:
            logger.error("Error saving session: %s", exc)

    def _fail(self, message: str) -> AuthState:
        self.state = replace(
            self.state, is_authenticated=False, is_loading=False, error=message,
        )
        return self.state

    async def login(self, phone_number: str, code: str) -> AuthState:
        """Log in by phone number.

        A matching unused temporary code marks the account as activated
        (``password_set``). Any other code is accepted as-is.
        """
        self.state = replace(self.state, is_loading=True, error=None)
        user = self._store.find_user_by_phone(phone_number)
        if user is None:
            return self._fail("User not found")

        # TODO: reject codes that don't match once every account has been activated
        if not user.password_set and user.temporary_code and user.temporary_code == code:
            user = replace(user, password_set=True)
            self._store.update_user(user)
            logger.info("Temporary code used by %s", user.name)

        self._set_session(user)
        self.state = AuthState(is_authenticated=True, current_user=user, is_loading=False)
        logger.info("Logged in: %s", user.name)
        return self.state

    async def register(self, name: str, phone_number: str) -> AuthState:
        """Self-registration as a read-only user, logged in immediately."""
        self.state = replace(self.state, is_loading=True, error=None)
        if self._store.find_user_by_phone(phone_number.strip()) is not None:
            return self._fail("Phone number already in use")

        try:
            user = self._store.add_user(name=name, phone_number=phone_number)
        except ValueError as exc:
            return self._fail(str(exc))
        code = generate_temporary_code()
        user = self._store.set_temporary_code(user.id, code) or user

        if self._sms is not None:
            try:
                await self._sms.send_invitation(user.phone_number, user.name, code)
            except Exception as exc:
                logger.error("Verification SMS to %s failed: %s", user.phone_number, exc)
                return self._fail(f"Registration failed: {exc}")

        self._set_session(user)
        self.state = AuthState(is_authenticated=True, current_user=user, is_loading=False)
        logger.info("Registered: %s", user.name)
        return self.state

    def logout(self) -> AuthState:
        self._set_session(None)
        self.state = AuthState(is_loading=False)
        return self.state

    def update_profile(self, **changes: object) -> User | None:
        """Apply field changes to the session user and the user directory."""
        user = self.state.current_user
        if user is None:
            return None
        changes.pop("id", None)
        updated = replace(user, **changes)
        self._store.update_user(updated)
        self._set_session(updated)
        self.state = replace(self.state, current_user=updated)
        return updated

    async def request_verification_code(self, phone_number: str) -> bool:
        """Issue and text a fresh login code. False when it can't be done."""
        user = self._store.find_user_by_phone(phone_number)
        if user is None:
            logger.error("Failed to request verification code: user not found")
            return False

        code = generate_temporary_code()
        user = self._store.set_temporary_code(user.id, code) or user
        if self._sms is not None:
            try:
                await self._sms.send_credential_reset(user.phone_number, user.name, code)
            except Exception as exc:
                logger.error("Failed to request verification code: %s", exc)
                return False
        return True
