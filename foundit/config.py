"""
Environment-backed settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


@dataclass
class Settings:
    database_url: str = "sqlite:///./foundit.db"

    # Firestore takes over the document store when a project is configured
    firebase_project_id: Optional[str] = None
    google_application_credentials: Optional[str] = None

    jwt_secret: str = "change-me"
    jwt_expire_minutes: int = 24 * 60  # 1 day
    google_client_id: Optional[str] = None
    allow_email_signup: bool = True

    # S3-compatible storage (Cloudflare R2)
    r2_bucket: Optional[str] = None
    cloudflare_account_id: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    cascade_retry_seconds: float = 30.0
    log_level: str = "INFO"

    @property
    def use_firestore(self) -> bool:
        return bool(self.firebase_project_id or self.google_application_credentials)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID"),
            google_application_credentials=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", cls.jwt_expire_minutes)),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            allow_email_signup=_env_bool("ALLOW_EMAIL_SIGNUP", True),
            r2_bucket=os.getenv("R2_BUCKET"),
            cloudflare_account_id=os.getenv("CLOUDFLARE_ACCOUNT_ID"),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000"),
            cascade_retry_seconds=float(os.getenv("CASCADE_RETRY_SECONDS", cls.cascade_retry_seconds)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    load_dotenv()
    return Settings.from_env()
