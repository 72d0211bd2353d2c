"""
Unit tests for plankalink.core.config, focused on the Planka switches.
"""
import pytest
from pydantic import ValidationError

from plankalink.core.config import Settings

SECRET = "test-secret-key-for-testing-only-32-chars"


def make_settings(**kwargs):
    """Create Settings without loading values from .env."""
    kwargs.setdefault("secret_key", SECRET)
    return Settings(_env_file=None, **kwargs)


class TestPlankaEnabled:

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("PLANKA_BASE_URL", raising=False)
        monkeypatch.delenv("PLANKA_INTEGRATION_ENABLED", raising=False)

        settings = make_settings()

        assert settings.planka_base_url is None
        assert settings.planka_enabled is False

    def test_requires_both_url_and_switch(self):
        assert make_settings(planka_base_url="https://planka.example").planka_enabled is False
        assert make_settings(planka_integration_enabled=True).planka_enabled is False
        assert make_settings(
            planka_base_url="https://planka.example",
            planka_integration_enabled=True,
        ).planka_enabled is True

    def test_switch_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("PLANKA_BASE_URL", "https://planka.example/")
        monkeypatch.setenv("PLANKA_INTEGRATION_ENABLED", "true")

        settings = make_settings()

        assert settings.planka_base_url == "https://planka.example"
        assert settings.planka_enabled is True

    def test_false_switch_disables(self, monkeypatch):
        monkeypatch.setenv("PLANKA_BASE_URL", "https://planka.example")
        monkeypatch.setenv("PLANKA_INTEGRATION_ENABLED", "false")

        assert make_settings().planka_enabled is False


class TestPlankaBaseUrl:

    def test_trailing_slash_and_whitespace_stripped(self):
        settings = make_settings(planka_base_url="  https://planka.example/  ")

        assert settings.planka_base_url == "https://planka.example"

    def test_blank_url_means_unset(self):
        assert make_settings(planka_base_url="   ").planka_base_url is None

    def test_scheme_required(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(planka_base_url="planka.example")
        assert "PLANKA_BASE_URL must start with http:// or https://" in str(exc_info.value)


class TestPlankaDefaults:

    def test_timeouts_and_policies(self):
        settings = make_settings()

        assert settings.planka_request_timeout_seconds == 15.0
        assert settings.planka_probe_timeout_seconds == 5.0
        assert settings.planka_derive_local_password is True
        assert settings.planka_revoke_token_on_unlink is False

    @pytest.mark.parametrize("value", [0, -1, 301])
    def test_timeout_bounds(self, value):
        with pytest.raises(ValidationError):
            make_settings(planka_request_timeout_seconds=value)

    def test_banned_ips_from_comma_separated_string(self):
        settings = make_settings(banned_ips="10.0.0.1, 10.0.0.2")

        assert settings.banned_ips == ["10.0.0.1", "10.0.0.2"]


class TestSecretKey:

    def test_generated_outside_production(self):
        settings = Settings(_env_file=None, secret_key="", environment="development")

        assert len(settings.secret_key) >= 32

    def test_required_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, secret_key="", environment="production")
        assert "SECRET_KEY must be set in production" in str(exc_info.value)

    def test_debug_refused_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(environment="production", debug=True)
        assert "DEBUG must be False in production" in str(exc_info.value)


class TestListFields:

    def test_banned_ips_from_environment(self, monkeypatch):
        monkeypatch.setenv("BANNED_IPS", "192.0.2.1,192.0.2.2")

        assert make_settings().banned_ips == ["192.0.2.1", "192.0.2.2"]
