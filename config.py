"""
Application configuration using Pydantic Settings.
Reads settings from BLOG_* environment variables (or a local .env file).
"""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    env: str = "development"
    log_level: str = "INFO"
    allowed_hosts: List[str] = ["musings-mr.net", "*.musings-mr.net", "localhost", "127.0.0.1", "testserver"]
    cors_origins: List[str] = []

    # Storage: "firestore" in production, "memory" for local runs and tests
    storage_backend: Literal["memory", "firestore"] = "memory"
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Session cookie
    session_cookie_name: str = "blog_sid"
    session_max_age_days: int = Field(default=14, ge=1)
    session_cookie_secure: Optional[bool] = None

    # Admin account created at startup when a password is provided
    admin_username: str = "admin"
    admin_password: Optional[str] = None
    admin_display_name: str = "Admin User"

    # Google Cloud
    gcs_bucket_name: str = "musings-mr.net"

    # Contact form notifications
    sendgrid_api_key_secret: Optional[str] = None
    notification_from_email: Optional[str] = None
    notification_to_email: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="BLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies are on in production unless explicitly overridden."""
        if self.session_cookie_secure is not None:
            return self.session_cookie_secure
        return self.env == "production"

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.sendgrid_api_key_secret and self.notification_from_email and self.notification_to_email)


@lru_cache
def get_settings() -> Settings:
    return Settings()
