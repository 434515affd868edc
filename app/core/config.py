"""
Core application configuration using Pydantic Settings.

All environment variables are loaded here and validated.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App Configuration
    APP_NAME: str = "Ledge Marketing API"
    APP_VERSION: str = "1.0.0"
    APP_URL: str = "http://localhost:5000"
    FRONTEND_URL: Optional[str] = None
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database (unset = in-memory demo store)
    DATABASE_URL: Optional[str] = None
    DATABASE_TIMEOUT_SECONDS: float = 10.0

    # Email delivery (Postmark)
    EMAIL_ENABLED: bool = False
    POSTMARK_API_KEY: Optional[str] = None
    FROM_EMAIL: str = "Ledge Marketing <no-reply@send.ledgemarketing.xyz>"
    EMAIL_SEND_TIMEOUT_SECONDS: float = 15.0

    # Whop billing
    WHOP_WEBHOOK_SECRET: Optional[str] = None
    WHOP_PLAN_ID_FREE: str = "FREE"
    WHOP_PLAN_ID_STARTER: str = "plan_starter"
    WHOP_PLAN_ID_GROWTH: str = "plan_growth"
    WHOP_PLAN_ID_PRO: str = "plan_pro"

    # Sentry Monitoring
    SENTRY_DSN: Optional[str] = None

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "200/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def email_live(self) -> bool:
        """Real sends only when enabled and a Postmark token is present."""
        return self.EMAIL_ENABLED and bool(self.POSTMARK_API_KEY)

    @property
    def uses_database(self) -> bool:
        return bool(self.DATABASE_URL)

    @property
    def cors_origins(self) -> List[str]:
        """Origins allowed to call the API (Whop iframe + frontend)."""
        origins = [
            "http://localhost:3000",
            "http://localhost:5173",
            "https://whop.com",
            "https://app.whop.com",
        ]
        if self.FRONTEND_URL:
            origins.append(self.FRONTEND_URL)
        return origins


# Global settings instance
settings = Settings()
