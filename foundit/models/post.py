from enum import Enum
from typing import Optional
from sqlmodel import SQLModel
from datetime import datetime

from foundit.services.documents import Document
from foundit.services.storage import ImageStorage
from foundit.utils.formatting import initials, time_ago, to_datetime


POSTS_COLLECTION = "posts"


class PostKind(str, Enum):
    lost = "lost"
    found = "found"


class Post(SQLModel):
    id: str

    # Item fields
    kind: PostKind = PostKind.lost
    title: str = ""
    description: str = ""
    location: str = ""

    # Author info
    author_id: Optional[str] = None
    author_name: str = "Unknown"
    anonymous: bool = False

    created_at: Optional[datetime] = None
    resolved: bool = False

    image_url: Optional[str] = None
    image_ref: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Document) -> "Post":
        data = doc.data or {}

        try:
            kind = PostKind(data.get("type") or PostKind.lost)
        except ValueError:
            kind = PostKind.lost

        return cls(
            id=doc.id,
            kind=kind,
            title=data.get("title") or "",
            description=data.get("description") or "",
            location=data.get("location") or "",
            author_id=data.get("userId") or None,
            author_name=data.get("userName") or "Unknown",
            anonymous=bool(data.get("anonymous")),
            created_at=to_datetime(data.get("createdAt")),
            resolved=bool(data.get("resolved")),
            image_url=data.get("imageUrl") or None,
            image_ref=data.get("imageRef") or None,
        )

    def is_owned_by(self, uid: Optional[str]) -> bool:
        return bool(uid) and self.author_id == uid

    def to_public(self, now: Optional[datetime] = None, images: Optional[ImageStorage] = None) -> dict:
        data = self.model_dump(mode="json")
        if images is not None and self.image_ref:
            # signed per read, stored URLs go stale
            data["image_url"] = images.url_for(self.image_ref)
        data["author_initials"] = initials(self.author_name)
        data["age"] = time_ago(self.created_at, now)
        return data


class PostDraft(SQLModel):
    kind: PostKind = PostKind.lost
    title: str = ""
    description: str = ""
    location: str = ""
    anonymous: bool = False
