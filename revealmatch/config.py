"""Configuration management for the RevealMatch service."""

from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    DATABASE_URL: str

    # Redis Configuration
    REDIS_URL: str | None = None

    # Sentry Configuration
    SENTRY_DSN: str | None = None

    # Application Configuration
    APP_NAME: str = "RevealMatch"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    DEBUG: bool = Field(default=False)

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CRON_SECRET: str | None = None

    # Store Configuration
    STORE_TIMEOUT_SECONDS: float = 5.0
    CACHE_TTL_SECONDS: int = 300

    # Matching Algorithm Configuration
    DEFAULT_MAX_DISTANCE_KM: float = 50.0
    DEFAULT_MIN_AGE: int = 18
    DEFAULT_MAX_AGE: int = 99
    GLOBAL_TIER_CAP: int = 10

    # Conversation Configuration
    REVEAL_STEP: int = 1
    REVEAL_MAX: int = 100
    CONVERSATION_COST: int = 1
    MESSAGE_MAX_LENGTH: int = 2000
    WELCOME_MESSAGE: str = "Welcome to your conversation! Be genuine, be kind and have fun."

    # Reconciliation Configuration
    RESERVATION_GRACE_SECONDS: int = 300
    MATCH_START_WINDOW_SECONDS: int = 1800

    @field_validator("DEBUG", mode="before")
    @classmethod
    def set_debug(cls, v: Any, info: ValidationInfo) -> bool:
        """Enable debug mode if ENVIRONMENT is development."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str) and v.strip():
            return v.strip().lower() in {"1", "true", "yes", "on"}
        return bool(info.data.get("ENVIRONMENT", "").lower() == "development")

    @field_validator("GLOBAL_TIER_CAP", "REVEAL_STEP", "REVEAL_MAX", "CONVERSATION_COST")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero or negative tuning values."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore")


# Create a global settings instance
settings = Settings()  # type: ignore


def get_settings() -> Settings:
    """Return the settings instance."""
    return settings
