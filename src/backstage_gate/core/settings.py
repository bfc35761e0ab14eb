"""Application settings and configuration.

This module defines all configuration options for the Backstage Gate service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Backstage Gate", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Owner authentication
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./backstage_gate.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Token lifetimes
    handshake_ttl_seconds: int = Field(default=600, alias="HANDSHAKE_TTL_SECONDS")
    credential_ttl_seconds: int = Field(default=86_400, alias="CREDENTIAL_TTL_SECONDS")

    # Bounds for external collaborator calls and fire-and-forget tasks
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        alias="COLLABORATOR_TIMEOUT_SECONDS",
    )
    background_task_timeout_seconds: float = Field(
        default=30.0,
        alias="BACKGROUND_TASK_TIMEOUT_SECONDS",
    )

    # Public URLs and collaborator endpoints
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")
    file_base_url: str = Field(default="http://localhost:8000/files", alias="FILE_BASE_URL")
    mail_relay_url: str | None = Field(default=None, alias="MAIL_RELAY_URL")
    mail_from: str = Field(default="no-reply@backstage.local", alias="MAIL_FROM")
    provider_verify_url: str | None = Field(default=None, alias="PROVIDER_VERIFY_URL")
    provider_authorize_urls: dict[str, str] = Field(
        default={
            "soundcloud": "https://secure.soundcloud.com/authorize",
            "spotify": "https://accounts.spotify.com/authorize",
            "instagram": "https://api.instagram.com/oauth/authorize",
        },
        alias="PROVIDER_AUTHORIZE_URLS",
    )
    provider_callback_path: str = Field(
        default="/api/v1/verifications/callback",
        alias="PROVIDER_CALLBACK_PATH",
    )

    # Consent taxonomy
    consent_brands: list[str] = Field(default=["artist"], alias="CONSENT_BRANDS")
    consent_mode: Literal["single", "per_brand"] = Field(default="single", alias="CONSENT_MODE")
    consent_required_brands: list[str] | None = Field(
        default=None,
        alias="CONSENT_REQUIRED_BRANDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
