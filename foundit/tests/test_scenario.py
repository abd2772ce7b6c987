import unittest

from foundit.models.chat import CHATS_COLLECTION
from foundit.models.post import POSTS_COLLECTION, Post, PostDraft, PostKind
from foundit.services.auth import AccountDirectory, LocalAuthService
from foundit.services.documents import DESCENDING, Query
from foundit.services.notifications import RequestConfirmation
from foundit.tests.support import CountingStore, RecordingNotifier, make_engine, make_store
from foundit.viewmodels.cascade import ResolutionCascade
from foundit.viewmodels.chat import ChatSession
from foundit.viewmodels.commands import PostCommands
from foundit.viewmodels.live import LiveCollection
from foundit.viewmodels.pending import PendingTracker
from foundit.viewmodels.session import SessionProvider
from foundit.viewmodels.transform import FeedView, ViewTransform


class LostBackpackScenarioTests(unittest.TestCase):
    """Two students, one backpack: post, chat, resolve, then the chat closes."""

    def setUp(self):
        self.store = CountingStore(make_store())
        directory = AccountDirectory(make_engine(), bcrypt_rounds=4)
        directory.create("a@campus.test", "password-a", "Ana")
        directory.create("b@campus.test", "password-b", "Ben")

        self.auth_a = LocalAuthService(directory)
        self.auth_b = LocalAuthService(directory)
        self.session_a = SessionProvider(self.auth_a).open()
        self.session_b = SessionProvider(self.auth_b).open()
        self.a = self.auth_a.sign_in_with_credentials("a@campus.test", "password-a")
        self.b = self.auth_b.sign_in_with_credentials("b@campus.test", "password-b")

        self.commands = PostCommands(
            self.store, RecordingNotifier(), PendingTracker(), ResolutionCascade(self.store)
        )
        self.feed = LiveCollection(
            self.store, Query(POSTS_COLLECTION).order("createdAt", DESCENDING), Post.from_document
        ).open()
        self.transform = ViewTransform()

    def tearDown(self):
        self.feed.close()
        self.session_a.close()
        self.session_b.close()

    def test_backpack_is_returned(self):
        post_id = self.commands.create(
            self.session_a, PostDraft(kind=PostKind.lost, title="Black Backpack", description="Navy straps")
        )
        self.assertEqual([p.id for p in self.transform(self.feed.records, FeedView())], [post_id])

        post = Post.from_document(self.store.get_document(POSTS_COLLECTION, post_id))
        chat_b = ChatSession(self.store, self.session_b, self.a.uid, post=post)
        self.assertIsNotNone(chat_b.send("Is this yours?"))

        expected_id = "_".join(sorted((self.a.uid, self.b.uid)))
        self.assertEqual(chat_b.chat_id, expected_id)

        chat_doc = self.store.get_document(CHATS_COLLECTION, expected_id).data
        self.assertEqual(set(chat_doc["userIds"]), {self.a.uid, self.b.uid})
        self.assertEqual(chat_doc["lastMessage"], "Is this yours?")

        chat_a = ChatSession(self.store, self.session_a, self.b.uid)
        self.commands.toggle_resolved(self.session_a, post, RequestConfirmation(True))

        self.assertTrue(chat_a.resolved)
        self.assertTrue(chat_b.resolved)
        self.assertEqual(self.transform(self.feed.records, FeedView()), [])

        writes_before = len(self.store.writes)
        self.assertIsNone(chat_a.send("Thanks!"))
        self.assertIsNone(chat_b.send("No problem"))
        self.assertEqual(len(self.store.writes), writes_before)

        chat_a.close()
        chat_b.close()

    def test_deleted_post_leaves_later_snapshots(self):
        keep = self.commands.create(self.session_a, PostDraft(title="Water bottle", description="Steel"))
        gone = self.commands.create(self.session_a, PostDraft(title="Calculator", description="TI-84"))

        post = Post.from_document(self.store.get_document(POSTS_COLLECTION, gone))
        self.commands.delete(self.session_a, post, RequestConfirmation(True))

        self.assertEqual([p.id for p in self.feed.records], [keep])

        self.commands.create(self.session_b, PostDraft(title="Lanyard", description="Blue"))
        self.assertNotIn(gone, [p.id for p in self.feed.records])


if __name__ == "__main__":
    unittest.main()
