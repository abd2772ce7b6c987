import unittest
from datetime import datetime, timedelta, timezone

from foundit.models.post import Post
from foundit.services.documents import Document
from foundit.utils.formatting import epoch_millis, initials, time_ago, to_datetime

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class InitialsTests(unittest.TestCase):
    def test_first_and_last_word(self):
        self.assertEqual(initials("ana maria reyes"), "AR")

    def test_single_word_and_blank(self):
        self.assertEqual(initials("Anonymous"), "A")
        self.assertEqual(initials("   "), "?")
        self.assertEqual(initials(None), "?")


class TimeAgoTests(unittest.TestCase):
    def test_buckets(self):
        cases = [
            (timedelta(seconds=30), "just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(days=2), "2d ago"),
            (timedelta(days=15), "2w ago"),
            (timedelta(days=65), "2mo ago"),
            (timedelta(days=800), "2y ago"),
        ]
        for delta, expected in cases:
            self.assertEqual(time_ago(NOW - delta, NOW), expected)

    def test_missing_timestamp(self):
        self.assertEqual(time_ago(None, NOW), "")


class TimestampTests(unittest.TestCase):
    def test_accepts_millis_iso_and_naive(self):
        self.assertEqual(to_datetime(NOW.timestamp() * 1000), NOW)
        self.assertEqual(to_datetime("2025-03-01T12:00:00Z"), NOW)
        self.assertEqual(to_datetime(NOW.replace(tzinfo=None)), NOW)
        self.assertIsNone(to_datetime("yesterday"))

    def test_missing_is_earliest(self):
        self.assertEqual(epoch_millis(None), 0)
        self.assertGreater(epoch_millis(NOW), 0)


class PostDefaultsTests(unittest.TestCase):
    def test_missing_fields_get_defaults(self):
        post = Post.from_document(Document("p1", {"type": "umbrella"}))

        self.assertEqual(post.kind.value, "lost")
        self.assertEqual(post.title, "")
        self.assertEqual(post.author_name, "Unknown")
        self.assertIsNone(post.author_id)
        self.assertFalse(post.resolved)

    def test_public_view_adds_initials_and_age(self):
        post = Post.from_document(Document("p1", {"userName": "Ana Reyes", "createdAt": NOW - timedelta(hours=1)}))
        data = post.to_public(NOW)

        self.assertEqual(data["author_initials"], "AR")
        self.assertEqual(data["age"], "1h ago")


if __name__ == "__main__":
    unittest.main()
