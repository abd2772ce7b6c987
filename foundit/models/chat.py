from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime

from foundit.services.documents import Document
from foundit.utils.formatting import time_ago, to_datetime


CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"


class Chat(SQLModel):
    id: str
    user_ids: list[str] = Field(default_factory=list)

    # Cached post info
    post_id: Optional[str] = None
    post_title: str = ""

    last_message: str = ""
    last_sender_id: Optional[str] = None
    resolved: bool = False
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Document) -> "Chat":
        data = doc.data or {}

        return cls(
            id=doc.id,
            user_ids=list(data.get("userIds") or []),
            post_id=data.get("postId") or None,
            post_title=data.get("postTitle") or "",
            last_message=data.get("lastMessage") or "",
            last_sender_id=data.get("lastSenderId") or None,
            resolved=bool(data.get("resolved")),
            updated_at=to_datetime(data.get("updatedAt")),
        )

    def to_public(self, now: Optional[datetime] = None) -> dict:
        data = self.model_dump(mode="json")
        data["post_title"] = self.post_title or "Untitled post"
        data["age"] = time_ago(self.updated_at, now)
        return data


class Message(SQLModel):
    id: str
    chat_id: str
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None
    sender_name: str = "Unknown"
    text: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Document) -> "Message":
        data = doc.data or {}

        return cls(
            id=doc.id,
            chat_id=data.get("chatId") or "",
            sender_id=data.get("senderId") or None,
            receiver_id=data.get("receiverId") or None,
            sender_name=data.get("displayName") or "Unknown",
            text=data.get("text") or "",
            created_at=to_datetime(data.get("createdAt")),
        )
