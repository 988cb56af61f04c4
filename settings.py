# settings.py
"""
Reflecta Coaching API Settings.

Pydantic settings management with environment variable support.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # MongoDB
    DATABASE_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string"
    )
    DATABASE_NAME: str = "reflecta"
    DATABASE_TIMEOUT_MS: int = 10000  # bound on every store operation

    # Environment
    ENV: str = "development"
    DEBUG: bool = True

    # Shared secret for the periodic trigger and the per-user processor
    CRON_SECRET: Optional[str] = None

    # Gemini (text generation)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    LLM_TIMEOUT_SECONDS: float = 45.0
    DRAFT_TEMPERATURE: float = 0.7
    DRAFT_MAX_TOKENS: int = 1000
    SIMULATION_TEMPERATURE: float = 0.3
    SIMULATION_MAX_TOKENS: int = 800

    # Coaching pipeline
    QUALITY_GATE_THRESHOLD: int = Field(
        default=6,
        description="Minimum overall effectiveness (1-10) required to deliver a message"
    )
    DEFAULT_USER_TIMEZONE: str = "America/New_York"
    CONTEXT_RECENT_ENTRIES: int = 10
    CONTEXT_ENTRY_MAX_CHARS: int = 1200

    # Expo push notifications
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    EXPO_ACCESS_TOKEN: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # Scheduler -> processor dispatch
    PROCESSOR_BASE_URL: str = "http://localhost:8000"
    DISPATCH_CONNECT_TIMEOUT_SECONDS: float = 2.0
    DISPATCH_ACK_TIMEOUT_SECONDS: float = 2.0
    DISPATCH_CONCURRENCY: int = 25

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: str = "production"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    @property
    def is_development(self) -> bool:
        """Check if running in local development."""
        return self.ENV == "development"

    @property
    def auth_required(self) -> bool:
        """Bearer checks apply everywhere except local development."""
        return not self.is_development

    @property
    def processor_url(self) -> str:
        """Absolute URL of the per-user processor endpoint."""
        return f"{self.PROCESSOR_BASE_URL.rstrip('/')}/coaching/processor"


settings = Settings()
