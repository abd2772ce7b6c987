from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class StoredDocument(SQLModel, table=True):
    __tablename__ = "documents"

    collection: str = Field(primary_key=True)
    id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    # Document body, datetimes tagged (see services/documents.py)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
