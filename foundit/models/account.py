import uuid
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    uid: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    email: Optional[str] = Field(default=None, index=True, unique=True)
    display_name: Optional[str] = Field(default=None)
    photo_url: Optional[str] = Field(default=None)

    # Credentials (email/password, google)
    password_hash: Optional[str] = Field(default=None)
    google_id: Optional[str] = Field(default=None, index=True, unique=True)
