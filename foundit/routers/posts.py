from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query as QueryParam, UploadFile, WebSocket
from fastapi.responses import JSONResponse

from foundit.dependencies import get_cascade, get_feed, get_feed_transform, get_image_storage, get_store, get_tracker
from foundit.errors import NotFoundError
from foundit.models.post import POSTS_COLLECTION, Post
from foundit.services.documents import DocumentStore
from foundit.services.notifications import CollectingNotifier, RequestConfirmation
from foundit.services.storage import ImageUpload
from foundit.utils.auth_helper import get_session_optional, get_session_required
from foundit.utils.form_validator import validate_post_form
from foundit.utils.live_socket import stream_snapshots
from foundit.viewmodels.commands import PostCommands
from foundit.viewmodels.pending import CommandState, ItemStatus
from foundit.viewmodels.session import SessionProvider
from foundit.viewmodels.transform import FeedView, Segment, SortKey, segment_counts


router = APIRouter()


def load_post(store: DocumentStore, post_id: str) -> Post:
    doc = store.get_document(POSTS_COLLECTION, post_id)
    if doc is None:
        raise NotFoundError("Post not found")
    return Post.from_document(doc)


def build_commands(notifier: CollectingNotifier) -> PostCommands:
    return PostCommands(
        store=get_store(),
        notifier=notifier,
        tracker=get_tracker(),
        cascade=get_cascade(),
        images=get_image_storage(),
    )


def render_feed(view: FeedView) -> dict:
    feed = get_feed()
    records = feed.records
    posts = get_feed_transform()(records, view)
    images = get_image_storage()

    return {
        "posts": [p.to_public(images=images) for p in posts],
        "counts": segment_counts(records),
        "loading": feed.loading,
        "error": str(feed.error) if feed.error else None,
    }


def command_response(
    status: Optional[ItemStatus],
    confirmation: RequestConfirmation,
    notifier: CollectingNotifier,
) -> JSONResponse:
    if status is None:
        # declined or not yet answered: hand the prompt back to the client
        return JSONResponse(
            status_code=428,
            content={
                "status": "fail",
                "message": "Confirmation required",
                "prompt": confirmation.prompt.as_dict() if confirmation.prompt else None,
            },
        )

    body = {**status.as_dict(), "notifications": notifier.as_list()}
    return JSONResponse(status_code=502 if status.state == CommandState.failed else 200, content=body)


@router.get("")
def get_feed_posts(
    segment: Segment = Segment.all,
    q: str = "",
    sort: SortKey = SortKey.latest,
    show_resolved: bool = False,
):
    return render_feed(FeedView(segment=segment, search=q, sort=sort, show_resolved=show_resolved))


@router.websocket("/live")
async def live_feed(
    websocket: WebSocket,
    segment: Segment = Segment.all,
    q: str = "",
    sort: SortKey = SortKey.latest,
    show_resolved: bool = False,
):
    await websocket.accept()

    view = FeedView(segment=segment, search=q, sort=sort, show_resolved=show_resolved)
    await stream_snapshots(websocket, get_feed().subscribe, lambda: render_feed(view))


@router.post("", status_code=201)
def create_post(
    kind: str = Form("lost"),
    title: str = Form(""),
    description: str = Form(""),
    location: str = Form(""),
    anonymous: bool = Form(False),
    image: Optional[UploadFile] = File(None),
    session: SessionProvider = Depends(get_session_optional),
):
    form = validate_post_form(kind, title, description, location, anonymous)

    upload = None
    if image is not None and image.filename:
        upload = ImageUpload(
            data=image.file.read(),
            filename=image.filename,
            content_type=image.content_type or "",
        )

    notifier = CollectingNotifier()
    post_id = build_commands(notifier).create(session, form.to_draft(), upload)

    return {"id": post_id, "notifications": notifier.as_list()}


@router.get("/{post_id}")
def get_post(post_id: str):
    return load_post(get_store(), post_id).to_public(images=get_image_storage())


@router.get("/{post_id}/status")
def get_post_status(post_id: str):
    return get_tracker().status(post_id).as_dict()


@router.post("/{post_id}/resolve")
def toggle_resolved(
    post_id: str,
    confirm: bool = QueryParam(False),
    session: SessionProvider = Depends(get_session_required),
):
    post = load_post(get_store(), post_id)

    notifier = CollectingNotifier()
    confirmation = RequestConfirmation(confirm)
    status = build_commands(notifier).toggle_resolved(session, post, confirmation)

    return command_response(status, confirmation, notifier)


@router.delete("/{post_id}")
def delete_post(
    post_id: str,
    confirm: bool = QueryParam(False),
    session: SessionProvider = Depends(get_session_required),
):
    post = load_post(get_store(), post_id)

    notifier = CollectingNotifier()
    confirmation = RequestConfirmation(confirm)
    status = build_commands(notifier).delete(session, post, confirmation)

    return command_response(status, confirmation, notifier)
