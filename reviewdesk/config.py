"""
App configuration: all credentials from environment (no hardcoded secrets).

Load from .env via pydantic_settings. In production, set ENVIRONMENT=production
so required secrets are validated at startup.
"""
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """Application settings from environment. No defaults for secrets in production."""

    database_url: str = "sqlite:///./reviewdesk.db"  # Use postgresql://... for production
    environment: str = "development"  # development | production (production validates secrets)
    log_level: str = "INFO"

    # Bearer tokens
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_minutes: int = 7 * 24 * 60

    # Google Business Profile OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/api/google-oauth/callback"
    frontend_url: str = "http://localhost:5173"

    # AI replies
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"
    openai_max_tokens: int = 200

    # Google API quota handling
    google_api_daily_quota: int = 10000
    google_api_per_100s_quota: int = 1000
    quota_cooldown_seconds: Optional[int] = None  # 600 in production, 30 otherwise
    google_call_delay_seconds: float = 1.2
    google_retry_max: int = 2
    google_retry_initial_delay: float = 5.0
    google_retry_max_delay: float = 30.0
    location_cache_ttl_seconds: int = 6 * 60 * 60

    # Rate limiting (prevent abuse and brute force)
    rate_limit_requests_per_minute_ip: int = 100
    rate_limit_requests_per_minute_user: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @model_validator(mode="after")
    def validate_production_secrets(self):
        """Fail fast in production if required credentials are missing."""
        if self.quota_cooldown_seconds is None:
            self.quota_cooldown_seconds = 600 if self.environment == "production" else 30
        if self.environment != "production":
            return self
        if self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError("In production, JWT_SECRET must be set in .env")
        if not (self.google_client_id and self.google_client_secret):
            raise ValueError(
                "In production, GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set in .env"
            )
        return self


settings = Settings()
