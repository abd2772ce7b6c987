import unittest

from foundit.services.auth import AccountDirectory, LocalAuthService
from foundit.tests.support import make_engine, make_user
from foundit.viewmodels.session import SessionProvider


class BrokenAuth:
    def observe_auth_state(self, callback):
        raise ConnectionError("auth stream unavailable")


class SessionProviderTests(unittest.TestCase):
    def setUp(self):
        self.directory = AccountDirectory(make_engine(), bcrypt_rounds=4)
        self.auth = LocalAuthService(self.directory)

    def test_starts_signed_out(self):
        with SessionProvider(self.auth) as session:
            self.assertFalse(session.is_authenticated)
            self.assertIsNone(session.uid)

    def test_follows_sign_in_and_sign_out(self):
        self.directory.create("ana@campus.test", "hunter22", "Ana")
        seen = []

        with SessionProvider(self.auth) as session:
            session.subscribe(lambda user: seen.append(user.display_name if user else None))

            self.auth.sign_in_with_credentials("ana@campus.test", "hunter22")
            self.assertEqual(session.current_user.display_name, "Ana")

            self.auth.sign_out()
            self.assertFalse(session.is_authenticated)

        self.assertEqual(seen, [None, "Ana", None])

    def test_restored_user_is_current_immediately(self):
        user = make_user("u1", "Ana")
        with SessionProvider(LocalAuthService(self.directory, current_user=user)) as session:
            self.assertEqual(session.uid, "u1")

    def test_broken_stream_reads_as_signed_out(self):
        with self.assertLogs("foundit.viewmodels.session", level="ERROR"):
            session = SessionProvider(BrokenAuth()).open()
        self.assertIsNone(session.current_user)

    def test_close_stops_following(self):
        self.directory.create("ana@campus.test", "hunter22")
        session = SessionProvider(self.auth).open()
        session.close()

        self.auth.sign_in_with_credentials("ana@campus.test", "hunter22")
        self.assertIsNone(session.current_user)

    def test_open_is_idempotent(self):
        session = SessionProvider(self.auth).open()
        session.open()
        self.assertEqual(len(self.auth._observers), 1)
        session.close()
        self.assertEqual(len(self.auth._observers), 0)


if __name__ == "__main__":
    unittest.main()
