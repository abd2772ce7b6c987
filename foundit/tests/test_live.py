import unittest

from foundit.models.post import Post
from foundit.services.documents import Document, Query
from foundit.tests.support import make_store
from foundit.viewmodels.live import LiveCollection, LiveDocument


class ManualStore:
    """Store whose snapshots are pushed by the test."""

    def __init__(self):
        self.watchers = []
        self.unsubscribed = 0

    def subscribe_to_query(self, query, on_snapshot, on_error=None):
        self.watchers.append((on_snapshot, on_error))

        def unsubscribe():
            self.unsubscribed += 1

        return unsubscribe


class LiveCollectionTests(unittest.TestCase):
    def test_records_follow_store_writes(self):
        store = make_store()
        feed = LiveCollection(store, Query("posts"), Post.from_document).open()
        self.assertFalse(feed.loading)
        self.assertEqual(feed.records, [])

        post_id = store.create_document("posts", {"title": "Scarf"})
        self.assertEqual([p.title for p in feed.records], ["Scarf"])

        store.delete_document("posts", post_id)
        self.assertEqual(feed.records, [])

    def test_each_snapshot_replaces_the_list(self):
        store = make_store()
        feed = LiveCollection(store, Query("posts"), Post.from_document).open()
        before = feed.records

        store.create_document("posts", {"title": "Scarf"})
        self.assertIsNot(feed.records, before)

    def test_listeners_are_notified(self):
        store = make_store()
        feed = LiveCollection(store, Query("posts"), Post.from_document).open()
        counts = []
        feed.subscribe(lambda live: counts.append(len(live.records)))

        store.create_document("posts", {"title": "Scarf"})
        store.create_document("posts", {"title": "Gloves"})
        self.assertEqual(counts, [1, 2])

    def test_stale_subscription_is_ignored(self):
        store = ManualStore()
        feed = LiveCollection(store, Query("posts"), lambda doc: doc.id).open()
        old_snapshot, _ = store.watchers[0]

        feed.set_query(Query("posts").where("type", "==", "found"))
        new_snapshot, _ = store.watchers[1]

        new_snapshot([Document("fresh")])
        old_snapshot([Document("stale")])

        self.assertEqual(feed.records, ["fresh"])
        self.assertEqual(store.unsubscribed, 1)

    def test_error_keeps_last_records(self):
        store = ManualStore()
        feed = LiveCollection(store, Query("posts"), lambda doc: doc.id).open()
        on_snapshot, on_error = store.watchers[0]

        on_snapshot([Document("a")])
        with self.assertLogs("foundit.viewmodels.live", level="ERROR"):
            on_error(RuntimeError("permission denied"))

        self.assertEqual(feed.records, ["a"])
        self.assertFalse(feed.loading)
        self.assertIsInstance(feed.error, RuntimeError)

    def test_null_query_empties_without_subscribing(self):
        store = make_store()
        store.create_document("posts", {"title": "Scarf"})
        feed = LiveCollection(store, Query("posts"), Post.from_document).open()

        feed.set_query(None)
        self.assertEqual(feed.records, [])
        self.assertFalse(feed.is_open)

        store.create_document("posts", {"title": "Gloves"})
        self.assertEqual(feed.records, [])

    def test_close_stops_updates(self):
        store = make_store()
        feed = LiveCollection(store, Query("posts"), Post.from_document).open()
        feed.close()

        store.create_document("posts", {"title": "Scarf"})
        self.assertEqual(feed.records, [])


class LiveDocumentTests(unittest.TestCase):
    def test_tracks_document_and_switches(self):
        store = make_store()
        store.set_document("chats", "a_b", {"postTitle": "Keys"})
        store.set_document("chats", "a_c", {"postTitle": "Wallet"})

        live = LiveDocument(store, "chats", "a_b", lambda doc: doc.data["postTitle"]).open()
        self.assertEqual(live.record, "Keys")

        live.set_document("a_c")
        self.assertEqual(live.record, "Wallet")

        store.set_document("chats", "a_b", {"postTitle": "Keys (found)"})
        self.assertEqual(live.record, "Wallet")

    def test_missing_document_maps_to_none(self):
        live = LiveDocument(make_store(), "chats", "x_y", lambda doc: doc.id).open()
        self.assertIsNone(live.record)
        self.assertFalse(live.loading)


if __name__ == "__main__":
    unittest.main()
