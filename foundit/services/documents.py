"""
Document store abstraction.

The store is the single shared mutable resource of the app. Writers never
patch client state directly: every write re-delivers a full snapshot to the
live queries watching the written collection, in write order.

``SqlDocumentStore`` keeps documents in one SQLModel table and evaluates
queries in Python. ``FirestoreDocumentStore`` (services/firestore.py) speaks
to Cloud Firestore with the same contract.
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from foundit.errors import NotFoundError, StoreError
from foundit.models.document import StoredDocument

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder replaced by the store's clock when the write lands.
SERVER_TIMESTAMP = _ServerTimestamp()

ASCENDING = "asc"
DESCENDING = "desc"

OPERATORS = ("==", "array-contains")


@dataclass(frozen=True)
class Document:
    id: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, data: dict) -> bool:
        actual = data.get(self.field)
        if self.op == "==":
            return actual == self.value
        return isinstance(actual, list) and self.value in actual


@dataclass(frozen=True)
class Query:
    collection: str
    filters: tuple[Filter, ...] = ()
    order_by: tuple[tuple[str, str], ...] = ()

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        return Query(self.collection, self.filters + (Filter(field_name, op, value),), self.order_by)

    def order(self, field_name: str, direction: str = ASCENDING) -> "Query":
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported direction: {direction}")
        return Query(self.collection, self.filters, self.order_by + ((field_name, direction),))

    def matches(self, data: dict) -> bool:
        return all(f.matches(data) for f in self.filters)

    def apply(self, docs: Sequence[Document]) -> list[Document]:
        result = [doc for doc in docs if self.matches(doc.data)]

        # stable sorts applied from the last key to the first
        for field_name, direction in reversed(self.order_by):
            result.sort(
                key=lambda doc: _sort_key(doc.data.get(field_name)),
                reverse=direction == DESCENDING,
            )
        return result


def _sort_key(value):
    # missing values sort before everything else
    if value is None:
        return (0, 0)
    if isinstance(value, datetime):
        return (1, value.timestamp())
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


SnapshotCallback = Callable[[list[Document]], None]
DocumentCallback = Callable[[Optional[Document]], None]
ErrorCallback = Callable[[Exception], None]


class DocumentStore(Protocol):
    """Operations the view-model layer needs from the document platform."""

    def subscribe_to_query(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...

    def subscribe_to_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...

    def create_document(self, collection: str, data: dict) -> str:
        ...

    def set_document(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        ...

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def delete_document(self, collection: str, doc_id: str) -> None:
        ...

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    def get_documents(self, query: Query) -> list[Document]:
        ...


_DATETIME_TAG = "__datetime__"


def _encode(value):
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value):
    if isinstance(value, dict):
        if set(value) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


@dataclass
class _Watch:
    collection: str
    query: Optional[Query]
    doc_id: Optional[str]
    on_snapshot: Callable
    on_error: Optional[ErrorCallback]


class SqlDocumentStore:
    """
    Document store over a single SQL table.

    Snapshots are delivered synchronously: once on subscribe, then after each
    write to the watched collection, from the writing thread and under the
    store lock so every watcher sees snapshots in write order.
    """

    def __init__(self, engine):
        self.engine = engine
        self._lock = threading.RLock()
        self._watches: dict[int, _Watch] = {}
        self._watch_ids = itertools.count(1)
        self._last_timestamp: Optional[datetime] = None

    # -- clock -----------------------------------------------------------

    def _server_time(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, data: dict, now: datetime) -> dict:
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    # -- reads -----------------------------------------------------------

    def _load(self, session: Session, collection: str) -> list[Document]:
        rows = session.exec(
            select(StoredDocument)
            .where(StoredDocument.collection == collection)
            .order_by(StoredDocument.created_at, StoredDocument.id)
        ).all()
        return [Document(row.id, _decode(row.data or {})) for row in rows]

    def get_documents(self, query: Query) -> list[Document]:
        try:
            with Session(self.engine) as session:
                return query.apply(self._load(session, query.collection))
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {query.collection}: {e}") from e

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredDocument, (collection, doc_id))
                if not row:
                    return None
                return Document(row.id, _decode(row.data or {}))
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {collection}/{doc_id}: {e}") from e

    # -- writes ----------------------------------------------------------

    def create_document(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex

        with self._lock:
            now = self._server_time()
            row = StoredDocument(
                collection=collection,
                id=doc_id,
                created_at=now,
                data=_encode(self._resolve(data, now)),
            )
            self._commit(lambda session: session.add(row), f"create {collection}")
            self._notify(collection, doc_id)

        return doc_id

    def set_document(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        with self._lock:
            now = self._server_time()

            def write(session: Session):
                row = session.get(StoredDocument, (collection, doc_id))
                body = self._resolve(data, now)

                if row is None:
                    session.add(StoredDocument(collection=collection, id=doc_id, created_at=now, data=_encode(body)))
                    return

                current = _decode(row.data or {}) if merge else {}
                current.update(body)
                row.data = _encode(current)
                session.add(row)

            self._commit(write, f"set {collection}/{doc_id}")
            self._notify(collection, doc_id)

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            now = self._server_time()

            def write(session: Session):
                row = session.get(StoredDocument, (collection, doc_id))
                if row is None:
                    raise NotFoundError(f"No document {collection}/{doc_id}")

                current = _decode(row.data or {})
                current.update(self._resolve(data, now))
                row.data = _encode(current)
                session.add(row)

            self._commit(write, f"update {collection}/{doc_id}")
            self._notify(collection, doc_id)

    def delete_document(self, collection: str, doc_id: str) -> None:
        with self._lock:

            def write(session: Session):
                row = session.get(StoredDocument, (collection, doc_id))
                if row is not None:
                    session.delete(row)

            self._commit(write, f"delete {collection}/{doc_id}")
            self._notify(collection, doc_id)

    def _commit(self, write: Callable[[Session], None], action: str) -> None:
        try:
            with Session(self.engine) as session:
                write(session)
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not {action}: {e}") from e

    # -- live queries ----------------------------------------------------

    def subscribe_to_query(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        return self._watch(_Watch(query.collection, query, None, on_snapshot, on_error))

    def subscribe_to_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        return self._watch(_Watch(collection, None, doc_id, on_snapshot, on_error))

    def _watch(self, watch: _Watch) -> Unsubscribe:
        with self._lock:
            watch_id = next(self._watch_ids)
            self._watches[watch_id] = watch
            self._deliver(watch_id, watch)

        def unsubscribe():
            with self._lock:
                self._watches.pop(watch_id, None)

        return unsubscribe

    def _notify(self, collection: str, doc_id: str) -> None:
        for watch_id, watch in list(self._watches.items()):
            if watch.collection != collection:
                continue
            if watch.doc_id is not None and watch.doc_id != doc_id:
                continue
            self._deliver(watch_id, watch)

    def _deliver(self, watch_id: int, watch: _Watch) -> None:
        # an earlier callback in this round may have unsubscribed it
        if watch_id not in self._watches:
            return

        try:
            if watch.query is not None:
                payload = self.get_documents(watch.query)
            else:
                payload = self.get_document(watch.collection, watch.doc_id)
        except StoreError as e:
            logger.error("Snapshot for %s failed: %s", watch.collection, e)
            if watch.on_error:
                watch.on_error(e)
            return

        try:
            watch.on_snapshot(payload)
        except Exception:
            # a broken listener must not fail the write that triggered it
            logger.exception("Snapshot listener on %s raised", watch.collection)
