"""
Shared fixtures for the test modules: an in-memory SQL store, signed-in
sessions and store wrappers that count or fail writes.
"""

import io

from PIL import Image

from foundit.db.db import create_db_engine, init_db
from foundit.errors import StoreError
from foundit.models.user import User
from foundit.services.auth import LocalAuthService
from foundit.services.documents import SqlDocumentStore
from foundit.viewmodels.session import SessionProvider


def png_bytes(width=2000, height=1000):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "navy").save(buffer, format="PNG")
    return buffer.getvalue()


def make_engine():
    return init_db(create_db_engine("sqlite://"))


def make_store() -> SqlDocumentStore:
    return SqlDocumentStore(make_engine())


def make_user(uid: str, name: str | None = None, email: str | None = None) -> User:
    return User(uid=uid, display_name=name, email=email or f"{uid}@campus.test")


def session_for(user: User | None) -> SessionProvider:
    return SessionProvider(LocalAuthService(None, current_user=user)).open()


class RecordingNotifier:
    def __init__(self):
        self.shown = []

    def show(self, title, message, severity="info"):
        self.shown.append((title, message, getattr(severity, "value", severity)))

    @property
    def titles(self):
        return [title for title, _, _ in self.shown]


class CountingStore:
    """Delegates to a real store and records every write call."""

    WRITES = ("create_document", "set_document", "update_document", "delete_document")

    def __init__(self, inner):
        self.inner = inner
        self.writes = []

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if name not in self.WRITES:
            return attr

        def recorded(*args, **kwargs):
            self.writes.append((name, args))
            return attr(*args, **kwargs)

        return recorded


class FlakyStore(CountingStore):
    """Fails the next ``failures`` calls of ``method`` with ``error`` (optionally only for one collection)."""

    def __init__(self, inner, method: str, failures: int = 1, collection: str | None = None, error=StoreError):
        super().__init__(inner)
        self.error = error
        self.method = method
        self.failures = failures
        self.collection = collection

    def __getattr__(self, name):
        attr = super().__getattr__(name)
        if name != self.method:
            return attr

        def flaky(*args, **kwargs):
            target = getattr(args[0], "collection", args[0]) if args else None
            targeted = self.collection is None or target == self.collection
            if targeted and self.failures > 0:
                self.failures -= 1
                raise self.error(f"simulated {name} failure")
            return attr(*args, **kwargs)

        return flaky
