"""
Chat sub-session: one conversation between the signed-in user and another
user about a post, plus the inbox listing every chat the user is part of.
"""

from __future__ import annotations

import logging
from typing import Optional

from foundit.errors import FoundItError
from foundit.models.chat import CHATS_COLLECTION, MESSAGES_COLLECTION, Chat, Message
from foundit.models.post import Post
from foundit.models.user import User
from foundit.services.documents import ASCENDING, DESCENDING, SERVER_TIMESTAMP, DocumentStore, Query
from foundit.services.notifications import Notifier, Severity
from foundit.viewmodels.live import LiveCollection, LiveDocument
from foundit.viewmodels.session import SessionProvider

logger = logging.getLogger(__name__)

NOT_SIGNED_IN = "You must be signed in to send messages"
EMPTY_MESSAGE = "Message is empty"
CHAT_RESOLVED = "This conversation is resolved"


def chat_id(a: str, b: str) -> str:
    """Canonical id for the chat between ``a`` and ``b``; argument order does not matter."""
    if not a or not b:
        raise ValueError("chat_id needs two user ids")
    if a == b:
        raise ValueError("chat_id needs two distinct user ids")
    return "_".join(sorted((a, b)))


def messages_query(chat: str, uid: str) -> Query:
    return (
        Query(MESSAGES_COLLECTION)
        .where("participants", "array-contains", uid)
        .where("chatId", "==", chat)
        .order("createdAt", ASCENDING)
    )


def inbox_query(uid: str) -> Query:
    return Query(CHATS_COLLECTION).where("userIds", "array-contains", uid).order("updatedAt", DESCENDING)


class ChatSession:
    def __init__(
        self,
        store: DocumentStore,
        session: SessionProvider,
        other_uid: str,
        post: Optional[Post] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.session = session
        self.other_uid = other_uid
        self.post = post
        self.notifier = notifier

        self.chat_id: Optional[str] = None
        self.chat: LiveDocument[Chat] = LiveDocument(store, CHATS_COLLECTION, None, Chat.from_document)
        self.messages: LiveCollection[Message] = LiveCollection(store, None, Message.from_document)

        self._unsubscribe_session = session.subscribe(self._on_user)

    @property
    def resolved(self) -> bool:
        return bool(self.chat.record and self.chat.record.resolved)

    def _on_user(self, user: Optional[User]) -> None:
        if user is None or not self.other_uid or user.uid == self.other_uid:
            self.chat_id = None
            self.chat.set_document(None)
            self.messages.set_query(None)
            return

        self.chat_id = chat_id(user.uid, self.other_uid)
        self.chat.set_document(self.chat_id)
        self.messages.set_query(messages_query(self.chat_id, user.uid))

    def rejection_reason(self, text: str) -> Optional[str]:
        if not self.session.is_authenticated or self.chat_id is None:
            return NOT_SIGNED_IN
        if not (text or "").strip():
            return EMPTY_MESSAGE
        if self.resolved:
            return CHAT_RESOLVED
        return None

    def load(self) -> "ChatSession":
        """One-shot read of the chat and its messages, for callers that cannot wait on a snapshot."""
        if self.chat_id is None:
            return self

        doc = self.store.get_document(CHATS_COLLECTION, self.chat_id)
        self.chat.record = Chat.from_document(doc) if doc else None
        self.chat.loading = False

        docs = self.store.get_documents(messages_query(self.chat_id, self.session.uid))
        self.messages.records = [Message.from_document(d) for d in docs]
        self.messages.loading = False
        return self

    def send(self, text: str) -> Optional[str]:
        reason = self.rejection_reason(text)
        if reason:
            logger.debug("Message to %s not sent: %s", self.other_uid, reason)
            return None

        user = self.session.current_user
        body = text.strip()

        # message first, then the chat summary; the two writes are not atomic
        try:
            message_id = self.store.create_document(
                MESSAGES_COLLECTION,
                {
                    "chatId": self.chat_id,
                    "participants": sorted({user.uid, self.other_uid}),
                    "senderId": user.uid,
                    "receiverId": self.other_uid,
                    "displayName": user.author_name(),
                    "text": body,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            self.store.set_document(CHATS_COLLECTION, self.chat_id, self._chat_update(user, body), merge=True)
        except FoundItError as e:
            logger.exception("Sending message in chat %s failed", self.chat_id)
            if self.notifier:
                self.notifier.show("Message not sent", e.message, Severity.error)
            return None

        return message_id

    def _chat_update(self, user: User, body: str) -> dict:
        update = {
            "userIds": sorted({user.uid, self.other_uid}),
            "lastMessage": body,
            "lastSenderId": user.uid,
            "updatedAt": SERVER_TIMESTAMP,
        }

        existing = self.chat.record
        if existing is None:
            doc = self.store.get_document(CHATS_COLLECTION, self.chat_id)
            existing = Chat.from_document(doc) if doc else None

        if self.post is not None:
            update["postId"] = self.post.id
            update["postTitle"] = self.post.title
        elif existing is not None:
            update["postId"] = existing.post_id
            update["postTitle"] = existing.post_title

        if existing is None:
            update["resolved"] = bool(self.post and self.post.resolved)
        return update

    def close(self) -> None:
        self._unsubscribe_session()
        self.chat.close()
        self.messages.close()


class ChatInbox:
    """Live list of the signed-in user's chats, most recently updated first."""

    def __init__(self, store: DocumentStore, session: SessionProvider):
        self.store = store
        self.session = session
        self.chats: LiveCollection[Chat] = LiveCollection(store, None, Chat.from_document)
        self._unsubscribe_session = session.subscribe(self._on_user)

    def _on_user(self, user: Optional[User]) -> None:
        self.chats.set_query(inbox_query(user.uid) if user else None)

    def load(self) -> list[Chat]:
        if not self.session.is_authenticated:
            return []
        docs = self.store.get_documents(inbox_query(self.session.uid))
        self.chats.records = [Chat.from_document(d) for d in docs]
        self.chats.loading = False
        return self.chats.records

    def close(self) -> None:
        self._unsubscribe_session()
        self.chats.close()
