"""
Live query subscribers.

Every snapshot replaces the whole local list; nothing is patched in place.
Concurrent edits from other clients are reconciled by taking the next full
snapshot (last snapshot wins).
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Generic, Optional, TypeVar

from foundit.services.documents import Document, DocumentStore, Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Listeners:
    def __init__(self):
        self._callbacks: dict[int, Callable] = {}
        self._ids = itertools.count(1)

    def add(self, callback: Callable) -> Callable[[], None]:
        listener_id = next(self._ids)
        self._callbacks[listener_id] = callback

        def remove():
            self._callbacks.pop(listener_id, None)

        return remove

    def emit(self, owner) -> None:
        for callback in list(self._callbacks.values()):
            callback(owner)

    def clear(self) -> None:
        self._callbacks.clear()


class LiveCollection(Generic[T]):
    """Keeps ``records`` equal to the mapped result of the latest snapshot of ``query``."""

    def __init__(self, store: DocumentStore, query: Optional[Query], mapper: Callable[[Document], T]):
        self.store = store
        self.query = query
        self.mapper = mapper

        self.records: list[T] = []
        self.loading = True
        self.error: Optional[Exception] = None

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._generation = 0
        self._listeners = _Listeners()

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    def open(self) -> "LiveCollection[T]":
        if self._unsubscribe is not None or self.query is None:
            return self

        self.loading = True
        self._generation += 1
        generation = self._generation

        # stale callbacks from an older subscription are ignored
        self._unsubscribe = self.store.subscribe_to_query(
            self.query,
            lambda docs: self._on_snapshot(generation, docs),
            lambda err: self._on_error(generation, err),
        )
        return self

    def set_query(self, query: Optional[Query]) -> None:
        if query == self.query and self.is_open:
            return

        self.close()
        self.query = query

        if query is None:
            self.records = []
            self.loading = False
            self._listeners.emit(self)
            return

        self.open()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._generation += 1

    def subscribe(self, callback: Callable[["LiveCollection[T]"], None]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def _on_snapshot(self, generation: int, docs: list[Document]) -> None:
        if generation != self._generation:
            return

        self.records = [self.mapper(doc) for doc in docs]
        self.loading = False
        self.error = None
        self._listeners.emit(self)

    def _on_error(self, generation: int, err: Exception) -> None:
        if generation != self._generation:
            return

        logger.error("Live query on %s failed: %s", self.query.collection if self.query else "?", err)
        self.loading = False
        self.error = err
        self._listeners.emit(self)


class LiveDocument(Generic[T]):
    """Single-document counterpart of ``LiveCollection``; a missing document maps to None."""

    def __init__(self, store: DocumentStore, collection: str, doc_id: Optional[str], mapper: Callable[[Document], T]):
        self.store = store
        self.collection = collection
        self.doc_id = doc_id
        self.mapper = mapper

        self.record: Optional[T] = None
        self.loading = True
        self.error: Optional[Exception] = None

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._generation = 0
        self._listeners = _Listeners()

    def open(self) -> "LiveDocument[T]":
        if self._unsubscribe is not None or self.doc_id is None:
            return self

        self.loading = True
        self._generation += 1
        generation = self._generation

        self._unsubscribe = self.store.subscribe_to_document(
            self.collection,
            self.doc_id,
            lambda doc: self._on_snapshot(generation, doc),
            lambda err: self._on_error(generation, err),
        )
        return self

    def set_document(self, doc_id: Optional[str]) -> None:
        if doc_id == self.doc_id and self._unsubscribe is not None:
            return

        self.close()
        self.doc_id = doc_id
        self.record = None

        if doc_id is None:
            self.loading = False
            self._listeners.emit(self)
            return

        self.open()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._generation += 1

    def subscribe(self, callback: Callable[["LiveDocument[T]"], None]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def _on_snapshot(self, generation: int, doc: Optional[Document]) -> None:
        if generation != self._generation:
            return

        self.record = self.mapper(doc) if doc is not None else None
        self.loading = False
        self.error = None
        self._listeners.emit(self)

    def _on_error(self, generation: int, err: Exception) -> None:
        if generation != self._generation:
            return

        logger.error("Live document %s/%s failed: %s", self.collection, self.doc_id, err)
        self.loading = False
        self.error = err
        self._listeners.emit(self)
