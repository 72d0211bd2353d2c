"""
Unit tests for the Planka login/link workflow (plankalink.integrations.service).

Planka is served by the in-process fake; the database is in-memory SQLite.
"""
from unittest.mock import patch

import pytest
from sqlmodel import select

from plankalink.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    IntegrationDisabledError,
    PlankaTimeoutError,
    UserAlreadyExistsError,
    ValidationError,
)
from plankalink.core.security import verify_password, verify_token
from plankalink.integrations import service
from plankalink.models.enums import AuthProvider
from plankalink.models.key import Key
from plankalink.models.user import User
from plankalink.services.planka_token_service import PlankaTokenService
from plankalink.services.user_service import UserService
from tests.lib.planka import raise_timeout

ALICE = {"id": "1001", "email": "alice@example.com", "username": "alice"}


def _serve_bare_token(fake_planka, profile=ALICE, token="abc.def.ghi"):
    fake_planka.add("POST", "/api/access-tokens", (200, {"item": token}))
    fake_planka.add("GET", "/api/users/me", (200, {"item": profile}))


def _users(session):
    return session.exec(select(User)).all()


class TestLogin:

    @pytest.mark.asyncio
    async def test_first_login_creates_account_and_stores_credential(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka)

        result = await service.login_with_planka(session, "alice@example.com", "secret")

        user = UserService(session).get_user_by_email("alice@example.com")
        assert user is not None
        assert user.provider == AuthProvider.PLANKA
        assert user.email_verified is True
        assert user.username == "alice"
        assert user.name == "alice"
        assert user.last_login_at is not None

        credential = PlankaTokenService(session).fetch(user.id)
        assert credential.access_token == "abc.def.ghi"
        assert credential.user_data["email"] == "alice@example.com"

        assert verify_token(result.token)["sub"] == str(user.id)
        assert result.user["id"] == str(user.id)
        assert result.user["email"] == "alice@example.com"
        assert result.user["plankaConnected"] is True
        assert "password" not in result.user

    @pytest.mark.asyncio
    async def test_login_is_idempotent(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka)

        first = await service.login_with_planka(session, "alice@example.com", "secret")
        second = await service.login_with_planka(session, "alice@example.com", "secret")

        assert first.user["id"] == second.user["id"]
        assert len(_users(session)) == 1
        assert len(session.exec(select(Key)).all()) == 1

    @pytest.mark.asyncio
    async def test_existing_local_account_is_reused(self, session, planka_enabled, fake_planka):
        existing = UserService(session).create_user(email="alice@example.com", name="Alice Local", password="local-pw")
        _serve_bare_token(fake_planka)

        result = await service.login_with_planka(session, "alice", "secret")

        assert result.user["id"] == str(existing.id)
        assert result.user["name"] == "Alice Local"
        assert verify_password("local-pw", session.get(User, existing.id).password)

    @pytest.mark.asyncio
    async def test_name_falls_back_to_login_identifier(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka, profile={"email": "dave@example.com"})

        await service.login_with_planka(session, "dave@example.com", "secret")

        user = UserService(session).get_user_by_email("dave@example.com")
        assert user.name == "dave@example.com"
        assert user.username == "dave"

    @pytest.mark.asyncio
    async def test_planka_name_preferred_over_username(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka, profile={**ALICE, "name": "Alice Liddell"})

        await service.login_with_planka(session, "alice", "secret")

        assert UserService(session).get_user_by_email("alice@example.com").name == "Alice Liddell"

    @pytest.mark.asyncio
    async def test_local_password_derived_from_planka_password(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka)

        await service.login_with_planka(session, "alice", "secret")

        user = UserService(session).get_user_by_email("alice@example.com")
        assert verify_password("secret", user.password)

    @pytest.mark.asyncio
    async def test_local_password_random_when_derivation_disabled(
        self, session, planka_enabled, fake_planka, monkeypatch
    ):
        monkeypatch.setattr(planka_enabled, "planka_derive_local_password", False)
        _serve_bare_token(fake_planka)

        await service.login_with_planka(session, "alice", "secret")

        user = UserService(session).get_user_by_email("alice@example.com")
        assert not verify_password("secret", user.password)

    @pytest.mark.asyncio
    async def test_rejected_credentials_create_nothing(self, session, planka_enabled, fake_planka):
        fake_planka.add("POST", "/api/access-tokens", (401, {"code": "E_UNAUTHORIZED"}))

        with pytest.raises(AuthenticationError, match="Invalid Planka credentials"):
            await service.login_with_planka(session, "alice@example.com", "wrong")

        assert _users(session) == []
        assert session.exec(select(Key)).all() == []

    @pytest.mark.asyncio
    async def test_planka_server_error_reported_as_invalid_credentials(self, session, planka_enabled, fake_planka):
        fake_planka.add("POST", "/api/access-tokens", (500, "boom"))

        with pytest.raises(AuthenticationError):
            await service.login_with_planka(session, "alice", "secret")

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, session, planka_enabled, fake_planka):
        fake_planka.add("POST", "/api/access-tokens", raise_timeout)

        with pytest.raises(PlankaTimeoutError):
            await service.login_with_planka(session, "alice", "secret")

    @pytest.mark.asyncio
    async def test_profile_without_email_is_configuration_error(self, session, planka_enabled, fake_planka):
        _serve_bare_token(fake_planka, profile={"username": "ghost"})

        with pytest.raises(ConfigurationError, match="Failed to get user data from Planka"):
            await service.login_with_planka(session, "ghost", "secret")

        assert _users(session) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identifier,password", [("", "secret"), ("alice", ""), (None, None)])
    async def test_missing_fields_rejected_before_planka(self, session, planka_enabled, fake_planka, identifier, password):
        with pytest.raises(ValidationError):
            await service.login_with_planka(session, identifier, password)

        assert fake_planka.requests == []

    @pytest.mark.asyncio
    async def test_disabled_integration_refuses_login(self, session, planka_disabled, fake_planka):
        with pytest.raises(IntegrationDisabledError):
            await service.login_with_planka(session, "alice", "secret")

        assert fake_planka.requests == []

    @pytest.mark.asyncio
    async def test_concurrent_creation_resolves_to_existing_account(self, session, planka_enabled, fake_planka):
        """The losing request of a first-login race re-reads the winner's account."""
        _serve_bare_token(fake_planka)
        winner = {}
        real_create = UserService.create_user

        def create_then_lose(self, **kwargs):
            winner["user"] = real_create(self, **kwargs)
            raise UserAlreadyExistsError("Email already registered")

        real_lookup = UserService.get_user_by_email
        lookups = []

        def lookup(self, email):
            lookups.append(email)
            # First lookup happens before the winner commits
            return None if len(lookups) == 1 else real_lookup(self, email)

        with patch.object(UserService, "create_user", create_then_lose), \
                patch.object(UserService, "get_user_by_email", lookup):
            result = await service.login_with_planka(session, "alice@example.com", "secret")

        assert result.user["id"] == str(winner["user"].id)
        assert len(_users(session)) == 1
        assert PlankaTokenService(session).is_linked(winner["user"].id)


class TestLinkUnlinkStatus:

    @pytest.mark.asyncio
    async def test_link_stores_credential_for_current_user(self, session, planka_enabled, fake_planka, local_user):
        _serve_bare_token(fake_planka, profile={"email": "bob@planka.example", "username": "bobp", "name": "Bob P."})

        response = await service.link_planka_account(session, local_user, "bobp", "secret")

        assert response.message == "Planka account linked successfully"
        assert response.planka_user.email == "bob@planka.example"
        assert response.planka_user.username == "bobp"
        # Association is by explicit call, not by email
        assert UserService(session).get_user_by_email("bob@planka.example") is None
        assert PlankaTokenService(session).fetch(local_user.id).access_token == "abc.def.ghi"

    @pytest.mark.asyncio
    async def test_link_rejected_credentials_store_nothing(self, session, planka_enabled, fake_planka, local_user):
        fake_planka.add("POST", "/api/access-tokens", (401, {}))

        with pytest.raises(AuthenticationError):
            await service.link_planka_account(session, local_user, "bobp", "wrong")

        assert PlankaTokenService(session).is_linked(local_user.id) is False

    @pytest.mark.asyncio
    async def test_unlink_is_idempotent(self, session, planka_enabled, local_user):
        PlankaTokenService(session).store(local_user.id, "tok")

        first = await service.unlink_planka_account(session, local_user)
        second = await service.unlink_planka_account(session, local_user)

        assert first.message == second.message == "Planka account unlinked successfully"
        assert PlankaTokenService(session).is_linked(local_user.id) is False

    @pytest.mark.asyncio
    async def test_unlink_does_not_contact_planka_by_default(self, session, planka_enabled, fake_planka, local_user):
        PlankaTokenService(session).store(local_user.id, "tok")

        await service.unlink_planka_account(session, local_user)

        assert fake_planka.requests == []

    @pytest.mark.asyncio
    async def test_unlink_revokes_token_when_configured(
        self, session, planka_enabled, fake_planka, local_user, monkeypatch
    ):
        monkeypatch.setattr(planka_enabled, "planka_revoke_token_on_unlink", True)
        fake_planka.add("DELETE", "/api/access-tokens/me", (200, {"item": "tok"}))
        PlankaTokenService(session).store(local_user.id, "tok")

        await service.unlink_planka_account(session, local_user)

        (request,) = fake_planka.calls("DELETE", "/api/access-tokens/me")
        assert request.headers["Authorization"] == "Bearer tok"
        assert PlankaTokenService(session).is_linked(local_user.id) is False

    @pytest.mark.asyncio
    async def test_unlink_survives_revocation_failure(
        self, session, planka_enabled, fake_planka, local_user, monkeypatch
    ):
        monkeypatch.setattr(planka_enabled, "planka_revoke_token_on_unlink", True)
        fake_planka.add("DELETE", "/api/access-tokens/me", (401, {}))
        PlankaTokenService(session).store(local_user.id, "tok")

        await service.unlink_planka_account(session, local_user)

        assert PlankaTokenService(session).is_linked(local_user.id) is False

    def test_status_reads_storage_only(self, session, planka_enabled, fake_planka, local_user):
        assert service.get_planka_status(session, local_user).connected is False

        PlankaTokenService(session).store(local_user.id, "tok", {"email": "bob@planka.example"})
        status = service.get_planka_status(session, local_user)

        assert status.connected is True
        assert status.user_data == {"email": "bob@planka.example"}
        assert fake_planka.requests == []


class TestConfig:

    def test_config_when_enabled(self, planka_enabled):
        config = service.get_planka_config()

        assert config.enabled is True
        assert config.base_url == "https://ext.example"

    def test_config_when_disabled(self, planka_disabled):
        config = service.get_planka_config()

        assert config.enabled is False
        assert config.base_url is None

    def test_switch_without_url_is_disabled(self, monkeypatch, planka_disabled):
        monkeypatch.setattr(planka_disabled, "planka_integration_enabled", True)

        assert service.get_planka_config().enabled is False
        with pytest.raises(IntegrationDisabledError):
            service.require_planka_enabled()
