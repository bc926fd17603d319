"""
Configuration management for Plan2Tasks.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from plan2tasks.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables
    (GOOGLE_OAUTH_CLIENT_ID, DATABASE_URL, SITE_URL, ...).
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/plan2tasks.db",
        description="Database connection URL"
    )

    # Public site
    site_url: str = Field(
        default="",
        description="Public base URL used in invite links and confirmation pages"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Google OAuth Configuration
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )
    google_oauth_redirect_uri: str = Field(
        default="",
        description="OAuth redirect URI (must match Google Cloud Console byte for byte)"
    )
    oauth_state_secret: str = Field(
        default="",
        description="Key for signing OAuth state (defaults to the client secret)"
    )

    # Token lifecycle
    token_refresh_margin_seconds: int = Field(
        default=60,
        ge=0,
        description="Treat access tokens expiring within this window as expired"
    )
    default_token_lifetime_seconds: int = Field(
        default=3600,
        gt=0,
        description="Access token lifetime assumed when Google omits expires_in"
    )

    # Outbound HTTP
    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for every call to Google"
    )
    push_max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum parallel deliveries during a bulk push"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_google_oauth(self) -> bool:
        """Check if Google OAuth is fully configured."""
        return bool(
            self.google_oauth_client_id
            and self.google_oauth_client_secret
            and self.google_oauth_redirect_uri
        )

    @property
    def state_signing_key(self) -> str:
        """Key used to sign OAuth state values."""
        return self.oauth_state_secret or self.google_oauth_client_secret

    @property
    def public_base_url(self) -> str:
        """Site URL without a trailing slash."""
        return self.site_url.rstrip("/")

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ConfigurationError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if not self.uses_google_oauth:
            errors.append("Google OAuth credentials are required in production.")

        if errors:
            raise ConfigurationError("Production configuration errors:\n- " + "\n- ".join(errors))

    def validate_google_oauth_config(self) -> None:
        """
        Validate Google OAuth configuration.

        Raises:
            ConfigurationError: If any required setting is missing
        """
        missing = []
        if not self.google_oauth_client_id:
            missing.append("GOOGLE_OAUTH_CLIENT_ID")
        if not self.google_oauth_client_secret:
            missing.append("GOOGLE_OAUTH_CLIENT_SECRET")
        if not self.google_oauth_redirect_uri:
            missing.append("GOOGLE_OAUTH_REDIRECT_URI")

        if missing:
            raise ConfigurationError(
                f"Google OAuth not configured: set {', '.join(missing)} in your .env file."
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from plan2tasks.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(settings.log_level)
