"""Application settings and configuration.

This module defines all configuration options for the WanderBuddy API.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="WanderBuddy", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Access tokens are issued by the identity provider and signed with this key
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./wanderbuddy.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Object storage (local directory exposed under a public URL prefix)
    storage_root: str = Field(default="./storage", alias="STORAGE_ROOT")
    storage_public_url: str = Field(
        default="http://localhost:8000/storage",
        alias="STORAGE_PUBLIC_URL",
    )
    upload_max_bytes: int = Field(default=10 * 1024 * 1024, alias="UPLOAD_MAX_BYTES")

    # Chat limits
    message_max_length: int = Field(default=5000, alias="MESSAGE_MAX_LENGTH")
    notification_preview_chars: int = Field(default=100, alias="NOTIFICATION_PREVIEW_CHARS")

    # Notification fan-out outbox
    fanout_worker_enabled: bool = Field(default=True, alias="FANOUT_WORKER_ENABLED")
    fanout_poll_interval_seconds: float = Field(
        default=2.0,
        alias="FANOUT_POLL_INTERVAL_SECONDS",
    )
    fanout_batch_size: int = Field(default=50, alias="FANOUT_BATCH_SIZE")
    fanout_max_retries: int = Field(default=5, alias="FANOUT_MAX_RETRIES")
    # A claim older than this is assumed to belong to a crashed dispatcher.
    fanout_claim_timeout_seconds: float = Field(default=300.0, alias="FANOUT_CLAIM_TIMEOUT_SECONDS")

    # Realtime change feed
    realtime_queue_size: int = Field(default=256, alias="REALTIME_QUEUE_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
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


settings = Settings()  # type: ignore[call-arg]
