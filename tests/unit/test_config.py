"""
Unit tests for plan2tasks/config.py

Tests Settings defaults, environment variable loading, OAuth and
production validation, and configuration caching behavior.
"""

import pytest
from pydantic import ValidationError

from plan2tasks.config import Settings, get_settings
from plan2tasks.exceptions import ConfigurationError

OAUTH_ENV = (
    "GOOGLE_OAUTH_CLIENT_ID",
    "GOOGLE_OAUTH_CLIENT_SECRET",
    "GOOGLE_OAUTH_REDIRECT_URI",
    "OAUTH_STATE_SECRET",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in OAUTH_ENV + ("PYTHON_ENV", "DATABASE_URL", "LOG_LEVEL", "SITE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestSettingsDefaults:
    """Test Settings initialization with default values."""

    def test_settings_defaults(self, clean_env):
        """Settings should initialize with correct default values."""
        settings = Settings(_env_file=None)

        assert settings.python_env == "development"
        assert settings.log_level == "INFO"
        assert settings.database_url == "sqlite:///./data/plan2tasks.db"
        assert settings.google_oauth_redirect_uri == ""
        assert settings.token_refresh_margin_seconds == 60
        assert settings.default_token_lifetime_seconds == 3600
        assert settings.http_timeout_seconds == 10.0
        assert settings.push_max_concurrency == 4
        assert settings.uses_google_oauth is False

    def test_is_production_when_set(self, clean_env):
        settings = Settings(_env_file=None, python_env="production")
        assert settings.is_production is True
        assert settings.is_development is False

    def test_public_base_url_strips_trailing_slash(self, clean_env):
        settings = Settings(_env_file=None, site_url="https://plan2tasks.example.com/")
        assert settings.public_base_url == "https://plan2tasks.example.com"


class TestSettingsEnvironmentVariables:
    """Test Settings loading from environment variables."""

    def test_settings_from_env_vars(self, monkeypatch):
        """Settings should load values from environment variables."""
        monkeypatch.setenv("PYTHON_ENV", "production")
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/plan2tasks")
        monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_ID", "env-client")
        monkeypatch.setenv("TOKEN_REFRESH_MARGIN_SECONDS", "120")

        settings = Settings(_env_file=None)

        assert settings.is_production is True
        assert settings.uses_postgresql is True
        assert settings.google_oauth_client_id == "env-client"
        assert settings.token_refresh_margin_seconds == 120

    def test_invalid_python_env(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, python_env="staging")

        assert exc_info.value.errors()[0]["type"] == "literal_error"

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, push_max_concurrency=0)


class TestGoogleOAuthValidation:
    """validate_google_oauth_config fails closed and names what is missing."""

    def test_lists_every_missing_variable(self, clean_env):
        settings = Settings(_env_file=None)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_google_oauth_config()

        message = str(exc_info.value)
        assert "GOOGLE_OAUTH_CLIENT_ID" in message
        assert "GOOGLE_OAUTH_CLIENT_SECRET" in message
        assert "GOOGLE_OAUTH_REDIRECT_URI" in message

    def test_missing_redirect_uri_only(self, clean_env):
        """No redirect URI is derived; an unset one is an error."""
        settings = Settings(
            _env_file=None,
            google_oauth_client_id="id",
            google_oauth_client_secret="secret",
        )

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_google_oauth_config()

        assert "GOOGLE_OAUTH_REDIRECT_URI" in str(exc_info.value)
        assert "GOOGLE_OAUTH_CLIENT_ID" not in str(exc_info.value)

    def test_complete_config_passes(self, settings):
        settings.validate_google_oauth_config()
        assert settings.uses_google_oauth is True

    def test_state_key_falls_back_to_client_secret(self, clean_env):
        settings = Settings(_env_file=None, google_oauth_client_secret="secret")
        assert settings.state_signing_key == "secret"

        settings = Settings(_env_file=None, google_oauth_client_secret="secret", oauth_state_secret="state")
        assert settings.state_signing_key == "state"


class TestProductionValidation:

    def test_production_requires_postgresql(self, clean_env):
        settings = Settings(_env_file=None, python_env="production")

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_production_config()

        assert "PostgreSQL" in str(exc_info.value)

    def test_development_skips_checks(self, clean_env):
        Settings(_env_file=None).validate_production_config()

    def test_complete_production_config(self, clean_env):
        settings = Settings(
            _env_file=None,
            python_env="production",
            database_url="postgresql://db/plan2tasks",
            google_oauth_client_id="id",
            google_oauth_client_secret="secret",
            google_oauth_redirect_uri="https://plan2tasks.example.com/api/google/callback",
        )
        settings.validate_production_config()


class TestGetSettingsCaching:
    """Test get_settings() function and LRU cache behavior."""

    def test_get_settings_cached(self):
        """get_settings() should return the same instance on multiple calls."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
