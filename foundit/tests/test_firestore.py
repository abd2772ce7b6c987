import unittest
from unittest import mock

from firebase_admin import firestore
from google.api_core import exceptions

from foundit.errors import NotFoundError, StoreError
from foundit.models.post import Post
from foundit.services.documents import DESCENDING, SERVER_TIMESTAMP, Query
from foundit.services.firestore import FirestoreDocumentStore
from foundit.services.notifications import RequestConfirmation
from foundit.tests.support import RecordingNotifier, make_user, session_for
from foundit.viewmodels.cascade import ResolutionCascade
from foundit.viewmodels.commands import PostCommands
from foundit.viewmodels.pending import CommandState, PendingTracker


class FirestoreDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = mock.MagicMock()
        self.store = FirestoreDocumentStore(client=self.client)

    def test_server_timestamp_is_translated(self):
        self.client.collection.return_value.add.return_value = (None, mock.Mock(id="new-id"))

        doc_id = self.store.create_document("posts", {"title": "Keys", "createdAt": SERVER_TIMESTAMP})

        self.assertEqual(doc_id, "new-id")
        written = self.client.collection.return_value.add.call_args.args[0]
        self.assertIs(written["createdAt"], firestore.SERVER_TIMESTAMP)

    def test_query_filters_and_order_are_forwarded(self):
        ref = self.client.collection.return_value
        ref.where.return_value = ref
        ref.order_by.return_value = ref
        ref.stream.return_value = [mock.Mock(id="c1", to_dict=mock.Mock(return_value={"resolved": False}))]

        docs = self.store.get_documents(
            Query("chats").where("userIds", "array-contains", "ana").order("updatedAt", DESCENDING)
        )

        self.assertEqual([d.id for d in docs], ["c1"])
        ref.order_by.assert_called_once_with("updatedAt", direction=firestore.Query.DESCENDING)
        field_filter = ref.where.call_args.kwargs["filter"]
        self.assertEqual((field_filter.field_path, field_filter.op_string, field_filter.value), ("userIds", "array_contains", "ana"))

    def test_missing_document_on_update(self):
        doc = self.client.collection.return_value.document.return_value
        doc.update.side_effect = exceptions.NotFound("gone")

        with self.assertRaises(NotFoundError):
            self.store.update_document("posts", "p1", {"resolved": True})

    def test_api_errors_become_store_errors(self):
        doc = self.client.collection.return_value.document.return_value
        doc.delete.side_effect = exceptions.ServiceUnavailable("down")

        with self.assertRaises(StoreError):
            self.store.delete_document("posts", "p1")

    def test_retry_timeouts_become_store_errors(self):
        doc = self.client.collection.return_value.document.return_value
        doc.update.side_effect = exceptions.RetryError("Deadline exceeded", None)

        with self.assertRaises(StoreError):
            self.store.update_document("posts", "p1", {"resolved": True})

    def test_retry_timeout_fails_the_toggle_and_a_retry_succeeds(self):
        doc = self.client.collection.return_value.document.return_value
        doc.update.side_effect = exceptions.RetryError("Deadline exceeded", None)
        tracker = PendingTracker()
        notifier = RecordingNotifier()
        commands = PostCommands(self.store, notifier, tracker, ResolutionCascade(self.store))
        post = Post(id="p1", author_id="ana", title="Keys")
        session = session_for(make_user("ana"))

        with self.assertLogs("foundit.viewmodels.commands", level="ERROR"):
            status = commands.toggle_resolved(session, post, RequestConfirmation(True))
        self.assertEqual(status.state, CommandState.failed)
        self.assertEqual(notifier.titles, ["Update failed"])

        doc.update.side_effect = None
        status = commands.toggle_resolved(session, post, RequestConfirmation(True))
        self.assertEqual(status.state, CommandState.succeeded)

    def test_subscription_maps_snapshots(self):
        ref = self.client.collection.return_value
        seen = []

        unsubscribe = self.store.subscribe_to_query(Query("posts"), seen.append)
        callback = ref.on_snapshot.call_args.args[0]
        callback([mock.Mock(id="p1", to_dict=mock.Mock(return_value={"title": "Keys"}))], [], None)

        self.assertEqual(seen[0][0].data, {"title": "Keys"})
        self.assertIs(unsubscribe, ref.on_snapshot.return_value.unsubscribe)


if __name__ == "__main__":
    unittest.main()
