"""
Cloud Firestore implementation of the document store contract.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from foundit.errors import NotFoundError, StoreError
from foundit.services.documents import (
    DESCENDING,
    SERVER_TIMESTAMP,
    Document,
    DocumentCallback,
    ErrorCallback,
    Query,
    SnapshotCallback,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

FIRESTORE_OPERATORS = {"==": "==", "array-contains": "array_contains"}


def _to_firestore(data: dict) -> dict:
    return {k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v) for k, v in data.items()}


class FirestoreDocumentStore:
    """
    Thin adapter over ``firebase_admin.firestore``.

    Snapshot callbacks run on the SDK's watch thread.
    """

    def __init__(self, client=None, project_id: Optional[str] = None):
        if client is None:
            try:
                firebase_admin.get_app()
            except ValueError:
                options = {"projectId": project_id} if project_id else None
                firebase_admin.initialize_app(options=options)
            client = firestore.client()
        self.client = client

    def _query(self, query: Query):
        ref = self.client.collection(query.collection)
        for f in query.filters:
            ref = ref.where(filter=FieldFilter(f.field, FIRESTORE_OPERATORS[f.op], f.value))
        for field_name, direction in query.order_by:
            ref = ref.order_by(
                field_name,
                direction=firestore.Query.DESCENDING if direction == DESCENDING else firestore.Query.ASCENDING,
            )
        return ref

    def subscribe_to_query(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        def callback(docs, changes, read_time):
            try:
                payload = [Document(d.id, d.to_dict() or {}) for d in docs]
            except Exception as e:
                logger.error("Snapshot for %s failed: %s", query.collection, e)
                if on_error:
                    on_error(StoreError(str(e)))
                return
            on_snapshot(payload)

        try:
            watch = self._query(query).on_snapshot(callback)
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not watch {query.collection}: {e}") from e
        return watch.unsubscribe

    def subscribe_to_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        def callback(snapshots, changes, read_time):
            try:
                snap = snapshots[0] if snapshots else None
                payload = Document(snap.id, snap.to_dict() or {}) if snap is not None and snap.exists else None
            except Exception as e:
                logger.error("Snapshot for %s/%s failed: %s", collection, doc_id, e)
                if on_error:
                    on_error(StoreError(str(e)))
                return
            on_snapshot(payload)

        try:
            watch = self.client.collection(collection).document(doc_id).on_snapshot(callback)
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not watch {collection}/{doc_id}: {e}") from e
        return watch.unsubscribe

    def create_document(self, collection: str, data: dict) -> str:
        try:
            _, ref = self.client.collection(collection).add(_to_firestore(data))
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not create {collection}: {e}") from e
        return ref.id

    def set_document(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        try:
            self.client.collection(collection).document(doc_id).set(_to_firestore(data), merge=merge)
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not set {collection}/{doc_id}: {e}") from e

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        try:
            self.client.collection(collection).document(doc_id).update(_to_firestore(data))
        except exceptions.NotFound as e:
            raise NotFoundError(f"No document {collection}/{doc_id}") from e
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not update {collection}/{doc_id}: {e}") from e

    def delete_document(self, collection: str, doc_id: str) -> None:
        try:
            self.client.collection(collection).document(doc_id).delete()
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not delete {collection}/{doc_id}: {e}") from e

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            snap = self.client.collection(collection).document(doc_id).get()
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not read {collection}/{doc_id}: {e}") from e

        if not snap.exists:
            return None
        return Document(snap.id, snap.to_dict() or {})

    def get_documents(self, query: Query) -> list[Document]:
        try:
            return [Document(d.id, d.to_dict() or {}) for d in self._query(query).stream()]
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Could not read {query.collection}: {e}") from e
