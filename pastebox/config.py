"""Configuration settings for Pastebox."""

import os
import secrets
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pastebox.db")

    # JWT
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_MINUTES: int = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

    # Server
    PORT: int = int(os.getenv("PORT", "3000"))
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", f"http://localhost:{PORT}").rstrip("/")

    # Mail
    EMAIL_HOST: str = os.getenv("EMAIL_HOST", "")
    EMAIL_PORT: int = int(os.getenv("EMAIL_PORT", "587"))
    EMAIL_SECURE: bool = os.getenv("EMAIL_SECURE", "false").lower() == "true"
    EMAIL_USER: str = os.getenv("EMAIL_USER", "")
    EMAIL_PASS: str = os.getenv("EMAIL_PASS", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", EMAIL_USER)
    EMAIL_TIMEOUT_SECONDS: float = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

    # Outbox
    OUTBOX_ENABLED: bool = os.getenv("OUTBOX_ENABLED", "true").lower() == "true"
    OUTBOX_POLL_SECONDS: float = float(os.getenv("OUTBOX_POLL_SECONDS", "5"))
    OUTBOX_MAX_ATTEMPTS: int = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_BACKOFF_SECONDS: float = float(os.getenv("OUTBOX_BACKOFF_SECONDS", "30"))

    # Pastes
    PASTES_FILE: str = os.getenv("PASTES_FILE", "pastes.json")
    PASTE_COMPACT_THRESHOLD: int = int(os.getenv("PASTE_COMPACT_THRESHOLD", "1000"))

    # Upload
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_SIZE_MB: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "5"))

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    def __init__(self) -> None:
        self.jwt_secret_generated = not self.JWT_SECRET_KEY
        if self.jwt_secret_generated:
            self.JWT_SECRET_KEY = secrets.token_urlsafe(32)

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if self.jwt_secret_generated:
            errors.append("JWT_SECRET_KEY is not set - using auto-generated key (not persistent across restarts)")
        if not self.EMAIL_HOST:
            errors.append("EMAIL_HOST is not set - outgoing mail will be written to the log instead of sent")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
