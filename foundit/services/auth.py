"""
Authentication: accounts, credential checks and the auth-state stream.

``AccountDirectory`` is shared by the whole process and owns the accounts
table. ``LocalAuthService`` is scoped to one client (one request in the HTTP
layer) and publishes that client's signed-in user to its observers.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

import bcrypt
from google.auth.transport import requests as grequests
from google.oauth2 import id_token
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from foundit.errors import AuthError, StoreError
from foundit.models.account import Account
from foundit.models.user import User

logger = logging.getLogger(__name__)

INVALID_CREDENTIAL = "auth/invalid-credential"
USER_NOT_FOUND = "auth/user-not-found"
TOO_MANY_REQUESTS = "auth/too-many-requests"
EMAIL_IN_USE = "auth/email-already-in-use"
INVALID_EMAIL = "auth/invalid-email"
OPERATION_NOT_ALLOWED = "auth/operation-not-allowed"
WEAK_PASSWORD = "auth/weak-password"

AUTH_ERROR_MESSAGES = {
    INVALID_CREDENTIAL: "Invalid email or password.",
    USER_NOT_FOUND: "No account found with that email.",
    TOO_MANY_REQUESTS: "Too many attempts. Try again later.",
    EMAIL_IN_USE: "That email is already registered.",
    INVALID_EMAIL: "Enter a valid email address.",
    OPERATION_NOT_ALLOWED: "Email/password sign-up is disabled.",
}

MIN_PASSWORD_LENGTH = 6
MAX_FAILED_ATTEMPTS = 5
FAILED_ATTEMPT_WINDOW = timedelta(minutes=15)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def describe_auth_error(err: AuthError) -> str:
    """Readable message for known provider codes, the raw message otherwise."""
    return AUTH_ERROR_MESSAGES.get(err.code, err.message)


AuthStateCallback = Callable[[Optional[User]], None]


class AuthService(Protocol):
    def sign_in_with_credentials(self, email: str, password: str) -> User:
        ...

    def sign_in_with_federated_provider(self, token: str) -> User:
        ...

    def register_with_credentials(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        ...

    def sign_out(self) -> None:
        ...

    def observe_auth_state(self, callback: AuthStateCallback) -> Callable[[], None]:
        ...


class GoogleTokenVerifier:
    def __init__(self, client_id: Optional[str]):
        self.client_id = client_id

    def verify(self, token: str) -> dict:
        if not self.client_id:
            raise AuthError(OPERATION_NOT_ALLOWED, "Google sign-in is not configured.")

        try:
            return id_token.verify_oauth2_token(token, grequests.Request(), self.client_id)
        except ValueError as e:
            raise AuthError(INVALID_CREDENTIAL, f"Invalid Google ID token: {e}") from e


class AccountDirectory:
    def __init__(self, engine, allow_email_signup: bool = True, bcrypt_rounds: int = 12):
        self.engine = engine
        self.allow_email_signup = allow_email_signup
        self.bcrypt_rounds = bcrypt_rounds

        self._failed_attempts: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def get(self, uid: str) -> Optional[User]:
        try:
            with Session(self.engine) as session:
                account = session.get(Account, uid)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load account: {e}") from e

        return User.from_account(account) if account else None

    def create(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        if not self.allow_email_signup:
            raise AuthError(OPERATION_NOT_ALLOWED, "Email sign-up is not enabled.")

        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise AuthError(INVALID_EMAIL, f"Invalid email: {email}")

        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(WEAK_PASSWORD, f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")

        account = Account(
            email=email,
            display_name=(display_name or "").strip() or None,
            password_hash=bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(self.bcrypt_rounds)).decode("utf-8"),
        )

        try:
            with Session(self.engine) as session:
                existing = session.exec(select(Account).where(Account.email == email)).first()
                if existing:
                    raise AuthError(EMAIL_IN_USE, f"Email already in use: {email}")

                session.add(account)
                session.commit()
                session.refresh(account)
        except IntegrityError as e:
            raise AuthError(EMAIL_IN_USE, f"Email already in use: {email}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create account: {e}") from e

        logger.info("Registered account %s", account.uid)
        return User.from_account(account)

    def verify(self, email: str, password: str) -> User:
        email = (email or "").strip().lower()
        self._check_throttle(email)

        try:
            with Session(self.engine) as session:
                account = session.exec(select(Account).where(Account.email == email)).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load account: {e}") from e

        if not account:
            raise AuthError(USER_NOT_FOUND, f"No account for {email}")

        if not account.password_hash or not bcrypt.checkpw(
            (password or "").encode("utf-8"), account.password_hash.encode("utf-8")
        ):
            self._record_failure(email)
            raise AuthError(INVALID_CREDENTIAL, "Wrong password")

        with self._lock:
            self._failed_attempts.pop(email, None)
        return User.from_account(account)

    def upsert_google(self, claims: dict) -> User:
        google_id = claims["sub"]
        email = (claims.get("email") or "").strip().lower() or None

        try:
            with Session(self.engine) as session:
                account = session.exec(select(Account).where(Account.google_id == google_id)).first()

                # link to an existing email account before creating a new one
                if not account and email:
                    account = session.exec(select(Account).where(Account.email == email)).first()
                    if account:
                        account.google_id = google_id

                if not account:
                    account = Account(google_id=google_id, email=email)

                account.display_name = account.display_name or claims.get("name")
                account.photo_url = claims.get("picture") or account.photo_url

                session.add(account)
                session.commit()
                session.refresh(account)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not save account: {e}") from e

        return User.from_account(account)

    def _check_throttle(self, email: str) -> None:
        cutoff = datetime.now(timezone.utc) - FAILED_ATTEMPT_WINDOW

        with self._lock:
            recent = [t for t in self._failed_attempts.get(email, []) if t > cutoff]
            if recent:
                self._failed_attempts[email] = recent
            else:
                self._failed_attempts.pop(email, None)

        if len(recent) >= MAX_FAILED_ATTEMPTS:
            raise AuthError(TOO_MANY_REQUESTS, "Too many failed sign-in attempts")

    def _record_failure(self, email: str) -> None:
        now = datetime.now(timezone.utc)
        cutoff = now - FAILED_ATTEMPT_WINDOW

        with self._lock:
            # drop addresses whose attempts have all aged out
            for stale in [addr for addr, times in self._failed_attempts.items() if times[-1] <= cutoff]:
                del self._failed_attempts[stale]
            self._failed_attempts.setdefault(email, []).append(now)


class LocalAuthService:
    """Auth state for one client, backed by the shared account directory."""

    def __init__(
        self,
        directory: AccountDirectory,
        verifier: Optional[GoogleTokenVerifier] = None,
        current_user: Optional[User] = None,
    ):
        self.directory = directory
        self.verifier = verifier
        self._current_user = current_user
        self._observers: dict[int, AuthStateCallback] = {}
        self._observer_ids = itertools.count(1)

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    def _set_user(self, user: Optional[User]) -> None:
        self._current_user = user
        for callback in list(self._observers.values()):
            callback(user)

    def sign_in_with_credentials(self, email: str, password: str) -> User:
        user = self.directory.verify(email, password)
        self._set_user(user)
        return user

    def sign_in_with_federated_provider(self, token: str) -> User:
        if self.verifier is None:
            raise AuthError(OPERATION_NOT_ALLOWED, "Federated sign-in is not configured.")

        claims = self.verifier.verify(token)
        user = self.directory.upsert_google(claims)
        self._set_user(user)
        return user

    def register_with_credentials(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        user = self.directory.create(email, password, display_name)
        self._set_user(user)
        return user

    def sign_out(self) -> None:
        self._set_user(None)

    def observe_auth_state(self, callback: AuthStateCallback) -> Callable[[], None]:
        observer_id = next(self._observer_ids)
        self._observers[observer_id] = callback

        # like the platform SDK, observers hear the current state right away
        callback(self._current_user)

        def unsubscribe():
            self._observers.pop(observer_id, None)

        return unsubscribe
