"""
Configuration management for MoltIn.

Loads settings from environment variables with sensible defaults.
Uses pydantic-settings for validation.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    url: str = Field(
        default="postgresql://localhost:5432/moltin",
        description="SQLAlchemy database URL"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for distributed rate limiting"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )

    model_config = SettingsConfigDict(env_prefix="DB_", env_file=".env", extra="ignore")


class AuthSettings(BaseSettings):
    """Session cookie and JWT settings."""

    jwt_secret: str = Field(
        default="dev-secret-change-me",
        description="Secret used to sign session JWTs"
    )
    jwt_algorithm: str = Field(default="HS256")
    session_cookie_name: str = Field(default="moltbook_session")
    session_expiry_days: int = Field(
        default=7,
        description="Days before a session token expires"
    )

    model_config = SettingsConfigDict(env_prefix="AUTH_", env_file=".env", extra="ignore")


class MoltbookSettings(BaseSettings):
    """Moltbook identity provider settings."""

    api_key: Optional[str] = Field(
        default=None,
        description="App key sent as X-Moltbook-App-Key"
    )
    api_url: str = Field(
        default="https://moltbook.com/api/v1",
        description="Moltbook API base URL"
    )
    app_url: Optional[str] = Field(
        default=None,
        description="Public URL of this app, used as the token audience"
    )
    timeout: float = Field(
        default=10.0,
        description="Seconds before a verification request is abandoned"
    )
    max_retries: int = Field(default=3)

    model_config = SettingsConfigDict(env_prefix="MOLTBOOK_", env_file=".env", extra="ignore")


class RateLimitSettings(BaseSettings):
    """Per-agent rate limits."""

    enabled: bool = Field(default=True)
    job_posts_per_hour: int = Field(
        default=10,
        description="Job posts allowed per agent in a sliding hour"
    )
    applications_per_day: int = Field(
        default=50,
        description="Applications allowed per agent in a sliding day"
    )

    model_config = SettingsConfigDict(env_prefix="RATELIMIT_", env_file=".env", extra="ignore")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    # Application
    app_name: str = "MoltIn"
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    performance_log: bool = Field(
        default=False,
        description="Log request timings and warn on slow requests"
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    moltbook: MoltbookSettings = Field(default_factory=MoltbookSettings)
    ratelimit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    model_config = SettingsConfigDict(env_prefix="MOLTIN_", env_file=".env", extra="ignore")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get application settings. Useful for dependency injection."""
    return Settings()
