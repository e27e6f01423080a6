"""Tests for src.core.auth — phone-number login and session persistence."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.auth import AuthService
from src.data.store import SESSION_USER_KEY
from src.ports.invitation_port import DispatchError


@pytest.fixture
def sms():
    port = MagicMock()
    port.send_invitation = AsyncMock(return_value="ok")
    port.send_credential_reset = AsyncMock(return_value="ok")
    return port


@pytest.fixture
def auth(store, sms):
    service = AuthService(store, sms)
    service.restore()
    return service


class TestRestore:
    def test_no_session(self, auth):
        assert auth.state.is_authenticated is False
        assert auth.state.is_loading is False
        assert auth.state.error is None

    def test_corrupt_session(self, store, storage):
        storage.set(SESSION_USER_KEY, "{nope")
        state = AuthService(store).restore()
        assert state.is_authenticated is False
        assert state.error == "Session expired, please log in again"

    @pytest.mark.asyncio
    async def test_session_survives_restart(self, store, auth, regular):
        await auth.login(regular.phone_number, "whatever")
        state = AuthService(store).restore()
        assert state.is_authenticated is True
        assert state.current_user.id == regular.id


class TestLogin:
    @pytest.mark.asyncio
    async def test_unknown_phone(self, auth):
        state = await auth.login("+19999999999", "123456")
        assert state.is_authenticated is False
        assert state.error == "User not found"

    @pytest.mark.asyncio
    async def test_temporary_code_activates_account(self, store, auth, regular):
        store.set_temporary_code(regular.id, "654321")
        state = await auth.login(regular.phone_number, "654321")
        assert state.is_authenticated is True
        assert state.current_user.password_set is True
        assert store.get_user(regular.id).password_set is True

    @pytest.mark.asyncio
    async def test_other_code_logs_in_without_activation(self, store, auth, regular):
        store.set_temporary_code(regular.id, "654321")
        state = await auth.login(regular.phone_number, "000000")
        assert state.is_authenticated is True
        assert store.get_user(regular.id).password_set is False

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, storage, auth, regular):
        await auth.login(regular.phone_number, "x")
        assert storage.get(SESSION_USER_KEY) is not None
        state = auth.logout()
        assert state.is_authenticated is False
        assert storage.get(SESSION_USER_KEY) is None


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_creates_read_only_user(self, store, auth, sms):
        state = await auth.register("Jo", "+15550000010")
        assert state.is_authenticated is True
        user = store.find_user_by_phone("+15550000010")
        assert user.permissions == ["read-only"]
        sms.send_invitation.assert_awaited_once_with("+15550000010", "Jo", user.temporary_code)

    @pytest.mark.asyncio
    async def test_register_duplicate_phone(self, auth, regular):
        state = await auth.register("Copy", regular.phone_number)
        assert state.error == "Phone number already in use"

    @pytest.mark.asyncio
    async def test_register_sms_failure(self, auth, sms):
        sms.send_invitation.side_effect = DispatchError("bad number")
        state = await auth.register("Jo", "+15550000010")
        assert state.is_authenticated is False
        assert "bad number" in state.error


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, store, auth, regular):
        await auth.login(regular.phone_number, "x")
        updated = auth.update_profile(name="Reggie", email="reg@example.com")
        assert updated.name == "Reggie"
        assert store.get_user(regular.id).email == "reg@example.com"
        assert AuthService(store).restore().current_user.name == "Reggie"

    def test_update_profile_logged_out(self, auth):
        assert auth.update_profile(name="x") is None

    @pytest.mark.asyncio
    async def test_request_verification_code(self, store, auth, sms, regular):
        assert await auth.request_verification_code(regular.phone_number) is True
        code = store.get_user(regular.id).temporary_code
        sms.send_credential_reset.assert_awaited_once_with(regular.phone_number, regular.name, code)

    @pytest.mark.asyncio
    async def test_request_verification_code_unknown(self, auth):
        assert await auth.request_verification_code("+19999999999") is False
