from typing import Optional
from fastapi import APIRouter, Depends, WebSocket, status
from pydantic import BaseModel, Field

from foundit.dependencies import get_store
from foundit.errors import FoundItError
from foundit.routers.posts import load_post
from foundit.services.notifications import CollectingNotifier
from foundit.utils.auth_helper import get_session_required, session_scope
from foundit.utils.formatting import initials
from foundit.utils.live_socket import stream_snapshots
from foundit.viewmodels.chat import ChatInbox, ChatSession, NOT_SIGNED_IN
from foundit.viewmodels.session import SessionProvider
from foundit.viewmodels.transform import ChatFilter, filter_chats


router = APIRouter()


class NewMessage(BaseModel):
    text: str = Field(max_length=2000)
    post_id: Optional[str] = None


def open_chat(session: SessionProvider, other_uid: str, post_id: Optional[str] = None, notifier=None) -> ChatSession:
    if other_uid == session.uid:
        raise FoundItError("You cannot message yourself", 400)

    store = get_store()
    post = load_post(store, post_id) if post_id else None
    return ChatSession(store, session, other_uid, post=post, notifier=notifier)


def render_chat(chat: ChatSession) -> dict:
    record = chat.chat.record
    uid = chat.session.uid

    return {
        "chat_id": chat.chat_id,
        "chat": record.to_public() if record else None,
        "resolved": chat.resolved,
        "messages": [
            {**m.model_dump(mode="json"), "mine": m.sender_id == uid, "sender_initials": initials(m.sender_name)}
            for m in chat.messages.records
        ],
    }


@router.get("")
def get_inbox(
    filter: ChatFilter = ChatFilter.all,
    session: SessionProvider = Depends(get_session_required),
):
    inbox = ChatInbox(get_store(), session)
    try:
        chats = inbox.load()
    finally:
        inbox.close()

    return {
        "chats": [c.to_public() for c in filter_chats(chats, filter)],
        "counts": {
            "all": len(chats),
            "open": sum(1 for c in chats if not c.resolved),
            "resolved": sum(1 for c in chats if c.resolved),
        },
    }


@router.get("/{other_uid}")
def get_chat(
    other_uid: str,
    post_id: Optional[str] = None,
    session: SessionProvider = Depends(get_session_required),
):
    chat = open_chat(session, other_uid, post_id)
    try:
        return render_chat(chat.load())
    finally:
        chat.close()


@router.post("/{other_uid}/messages", status_code=201)
def send_message(
    other_uid: str,
    payload: NewMessage,
    session: SessionProvider = Depends(get_session_required),
):
    notifier = CollectingNotifier()
    chat = open_chat(session, other_uid, payload.post_id, notifier)

    try:
        chat.load()

        reason = chat.rejection_reason(payload.text)
        if reason:
            raise FoundItError(reason, 409)

        message_id = chat.send(payload.text)
        if message_id is None:
            raise FoundItError("Message could not be sent", 502)

        return {"id": message_id, "chat_id": chat.chat_id, "notifications": notifier.as_list()}
    finally:
        chat.close()


@router.websocket("/{other_uid}/live")
async def live_chat(websocket: WebSocket, other_uid: str, token: str = ""):
    with session_scope(token) as session:
        if not session.is_authenticated or other_uid == session.uid:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=NOT_SIGNED_IN)
            return

        await websocket.accept()

        chat = ChatSession(get_store(), session, other_uid)
        try:

            def subscribe(callback):
                stop_messages = chat.messages.subscribe(callback)
                stop_chat = chat.chat.subscribe(callback)

                def unsubscribe():
                    stop_messages()
                    stop_chat()

                return unsubscribe

            await stream_snapshots(websocket, subscribe, lambda: render_chat(chat))
        finally:
            chat.close()
