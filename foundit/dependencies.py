"""
Dependency wiring for the FastAPI app.

Process-wide collaborators are singletons so live state (the feed
subscription, the pending tracker, the cascade queue) outlives a request.
"""

from __future__ import annotations

from typing import Optional

from foundit.config import get_settings
from foundit.db.db import create_db_engine, init_db
from foundit.models.post import POSTS_COLLECTION, Post
from foundit.services.auth import AccountDirectory, GoogleTokenVerifier
from foundit.services.documents import DESCENDING, DocumentStore, Query, SqlDocumentStore
from foundit.services.firestore import FirestoreDocumentStore
from foundit.services.storage import ImageStorage, InMemoryImageStorage, S3ImageStorage
from foundit.viewmodels.cascade import ResolutionCascade
from foundit.viewmodels.live import LiveCollection
from foundit.viewmodels.pending import PendingTracker
from foundit.viewmodels.transform import ViewTransform

FEED_QUERY = Query(POSTS_COLLECTION).order("createdAt", DESCENDING)

_engine = None
_store: Optional[DocumentStore] = None
_directory: Optional[AccountDirectory] = None
_verifier: Optional[GoogleTokenVerifier] = None
_images: Optional[ImageStorage] = None
_tracker: Optional[PendingTracker] = None
_cascade: Optional[ResolutionCascade] = None
_feed: Optional[LiveCollection[Post]] = None
_feed_transform: Optional[ViewTransform] = None


def get_engine():
    """
    Return a singleton SQL engine with the tables created.
    """
    global _engine
    if _engine is not None:
        return _engine

    _engine = init_db(create_db_engine(get_settings().database_url))
    return _engine


def get_store() -> DocumentStore:
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    if settings.use_firestore:
        _store = FirestoreDocumentStore(project_id=settings.firebase_project_id)
    else:
        _store = SqlDocumentStore(get_engine())
    return _store


def get_account_directory() -> AccountDirectory:
    global _directory
    if _directory is None:
        _directory = AccountDirectory(get_engine(), allow_email_signup=get_settings().allow_email_signup)
    return _directory


def get_verifier() -> GoogleTokenVerifier:
    global _verifier
    if _verifier is None:
        _verifier = GoogleTokenVerifier(get_settings().google_client_id)
    return _verifier


def get_image_storage() -> ImageStorage:
    global _images
    if _images is not None:
        return _images

    settings = get_settings()
    if settings.r2_bucket and settings.cloudflare_account_id:
        _images = S3ImageStorage(
            bucket=settings.r2_bucket,
            endpoint=f"https://{settings.cloudflare_account_id}.r2.cloudflarestorage.com",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    else:
        _images = InMemoryImageStorage()
    return _images


def get_tracker() -> PendingTracker:
    global _tracker
    if _tracker is None:
        _tracker = PendingTracker()
    return _tracker


def get_cascade() -> ResolutionCascade:
    global _cascade
    if _cascade is None:
        _cascade = ResolutionCascade(get_store())
    return _cascade


def get_feed() -> LiveCollection[Post]:
    """
    Return the app-wide live feed, opening it on first use.
    """
    global _feed
    if _feed is None:
        _feed = LiveCollection(get_store(), FEED_QUERY, Post.from_document)
    return _feed.open()


def get_feed_transform() -> ViewTransform:
    global _feed_transform
    if _feed_transform is None:
        _feed_transform = ViewTransform()
    return _feed_transform


def reset() -> None:
    """Drop every singleton and re-read settings. Used by tests."""
    global _engine, _store, _directory, _verifier, _images, _tracker, _cascade, _feed, _feed_transform

    if _feed is not None:
        _feed.close()

    _engine = _store = _directory = _verifier = _images = None
    _tracker = _cascade = _feed = _feed_transform = None
    get_settings.cache_clear()
