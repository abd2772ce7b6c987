"""
Mutation commands on posts: create, toggle-resolved, delete.

Each command validates locally, runs inside the per-item state machine and
reports its outcome through the notifier. Nothing is retried: a failed
command is terminal and the user reissues it.
"""

from __future__ import annotations

import logging
from typing import Optional

from foundit.errors import (
    DuplicateSubmissionError,
    NotAuthenticatedError,
    PermissionDeniedError,
    PostValidationError,
    SubmissionError,
    UploadError,
)
from foundit.models.post import POSTS_COLLECTION, Post, PostDraft
from foundit.services.documents import SERVER_TIMESTAMP, DocumentStore
from foundit.services.notifications import ConfirmPrompt, Confirmer, Notifier, Severity
from foundit.services.storage import ImageStorage, ImageUpload, UploadedImage
from foundit.viewmodels.cascade import ResolutionCascade
from foundit.viewmodels.pending import ItemStatus, PendingTracker
from foundit.viewmodels.session import SessionProvider

logger = logging.getLogger(__name__)

CREATE_FAILED = "Failed to create post. Please try again."


def validate_draft(draft: PostDraft) -> PostDraft:
    title = (draft.title or "").strip()
    description = (draft.description or "").strip()

    if not title:
        raise PostValidationError("Title is required", field="title")
    if not description:
        raise PostValidationError("Description is required", field="description")

    return PostDraft(
        kind=draft.kind,
        title=title,
        description=description,
        location=(draft.location or "").strip(),
        anonymous=draft.anonymous,
    )


def resolve_prompt(will_resolve: bool) -> ConfirmPrompt:
    if will_resolve:
        return ConfirmPrompt(
            title="Mark as resolved?",
            message="This will mark the item as resolved and hide it from the feed by default.",
            confirm_label="Mark resolved",
        )
    return ConfirmPrompt(
        title="Unresolve this post?",
        message="This will mark the item as not resolved so it appears in the active feed again.",
        confirm_label="Unresolve",
    )


DELETE_PROMPT = ConfirmPrompt(
    title="Delete this post?",
    message="This action is permanent. The post will be removed for everyone.",
    confirm_label="Delete",
    destructive=True,
)


class PostCommands:
    def __init__(
        self,
        store: DocumentStore,
        notifier: Notifier,
        tracker: PendingTracker,
        cascade: ResolutionCascade,
        images: Optional[ImageStorage] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.tracker = tracker
        self.cascade = cascade
        self.images = images

    # -- create ----------------------------------------------------------

    def create(self, session: SessionProvider, draft: PostDraft, image: Optional[ImageUpload] = None) -> str:
        cleaned = validate_draft(draft)

        user = session.current_user
        if user is None:
            raise NotAuthenticatedError("You must be signed in to create a post")

        key = f"create:{user.uid}"

        uploaded: Optional[UploadedImage] = None
        try:
            with self.tracker.track(key, "create"):
                if image is not None:
                    if self.images is None:
                        raise UploadError("Image uploads are not configured")
                    uploaded = self.images.upload_image(image.data, image.filename, image.content_type)

                post = {
                    "type": cleaned.kind.value,
                    "title": cleaned.title,
                    "description": cleaned.description,
                    "location": cleaned.location,
                    "userId": user.uid,
                    "userName": user.author_name(cleaned.anonymous),
                    "anonymous": cleaned.anonymous,
                    "createdAt": SERVER_TIMESTAMP,
                    "resolved": False,
                }
                # only the object key is stored; readers sign a fresh URL from it
                if uploaded:
                    post["imageRef"] = uploaded.ref

                post_id = self.store.create_document(POSTS_COLLECTION, post)
        except DuplicateSubmissionError:
            raise
        except UploadError as e:
            self.notifier.show("Upload failed", e.message, Severity.error)
            raise
        except Exception as e:
            logger.exception("Creating post for %s failed", user.uid)
            self._discard_image(uploaded)
            self.notifier.show("Post failed", CREATE_FAILED, Severity.error)
            raise SubmissionError(CREATE_FAILED) from e

        self.notifier.show("Post created", "Your post has been created successfully.", Severity.success)
        logger.info("Post %s created by %s", post_id, user.uid)
        return post_id

    # -- toggle resolved -------------------------------------------------

    def toggle_resolved(self, session: SessionProvider, post: Post, confirm: Confirmer) -> Optional[ItemStatus]:
        """Ask for confirmation, then flip ``post.resolved``. Returns None when declined."""
        self._require_owner(session, post, "Only the author can resolve this post")
        self._require_idle(post.id)

        will_resolve = not post.resolved
        outcome: list[ItemStatus] = []

        def on_result(confirmed: bool):
            if confirmed:
                outcome.append(self._set_resolved(post, will_resolve))

        confirm(resolve_prompt(will_resolve), on_result)
        return outcome[0] if outcome else None

    def _set_resolved(self, post: Post, resolved: bool) -> ItemStatus:
        try:
            with self.tracker.track(post.id, "resolve"):
                self.store.update_document(POSTS_COLLECTION, post.id, {"resolved": resolved})
                self.cascade.submit(post.id, resolved)
        except DuplicateSubmissionError:
            raise
        except Exception:
            logger.exception("Updating resolved on post %s failed", post.id)
            self.notifier.show("Update failed", "Could not update the post. Try again.", Severity.error)
            return self.tracker.status(post.id)

        if resolved:
            self.notifier.show("Marked as resolved", "The post is now hidden from the default feed.", Severity.success)
        else:
            self.notifier.show("Marked as unresolved", "The post is active again.", Severity.info)
        return self.tracker.status(post.id)

    # -- delete ----------------------------------------------------------

    def delete(self, session: SessionProvider, post: Post, confirm: Confirmer) -> Optional[ItemStatus]:
        """Ask for confirmation, then remove the post for good. Returns None when declined."""
        self._require_owner(session, post, "Only the author can delete this post")
        self._require_idle(post.id)

        outcome: list[ItemStatus] = []

        def on_result(confirmed: bool):
            if confirmed:
                outcome.append(self._delete(post))

        confirm(DELETE_PROMPT, on_result)
        return outcome[0] if outcome else None

    def _delete(self, post: Post) -> ItemStatus:
        try:
            with self.tracker.track(post.id, "delete"):
                self.store.delete_document(POSTS_COLLECTION, post.id)
        except DuplicateSubmissionError:
            raise
        except Exception:
            logger.exception("Deleting post %s failed", post.id)
            self.notifier.show("Delete failed", "Could not delete the post. Try again.", Severity.error)
            return self.tracker.status(post.id)

        if post.image_ref:
            self._discard_image(UploadedImage(url="", ref=post.image_ref))

        # the post is gone, so its entry is dropped once the outcome is read
        status = self.tracker.status(post.id)
        self.tracker.reset(post.id)

        self.notifier.show("Deleted", "Your post was deleted.", Severity.success)
        logger.info("Post %s deleted", post.id)
        return status

    # -- helpers ---------------------------------------------------------

    def _require_owner(self, session: SessionProvider, post: Post, message: str) -> None:
        if not session.is_authenticated:
            raise NotAuthenticatedError()
        if not post.is_owned_by(session.uid):
            raise PermissionDeniedError(message)

    def _require_idle(self, key: str) -> None:
        if self.tracker.is_pending(key):
            raise DuplicateSubmissionError(key)

    def _discard_image(self, uploaded: Optional[UploadedImage]) -> None:
        if uploaded is None or self.images is None:
            return
        try:
            self.images.delete_image(uploaded.ref)
        except UploadError as e:
            logger.warning("Could not remove image %s: %s", uploaded.ref, e)
