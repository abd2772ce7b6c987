"""
Session provider: the single owner of the auth-state subscription.

Components receive the provider explicitly instead of reaching for global
auth state; whoever creates it (the app root, or one HTTP request) closes it.
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Optional

from foundit.models.user import User
from foundit.services.auth import AuthService

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[User]], None]


class SessionProvider:
    def __init__(self, auth: AuthService):
        self.auth = auth
        self._user: Optional[User] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: dict[int, SessionCallback] = {}
        self._listener_ids = itertools.count(1)

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def uid(self) -> Optional[str]:
        return self._user.uid if self._user else None

    def open(self) -> "SessionProvider":
        if self._unsubscribe is not None:
            return self

        try:
            self._unsubscribe = self.auth.observe_auth_state(self._on_auth_state)
        except Exception as e:
            # a broken auth stream reads as "no user", no retry
            logger.error("Auth state stream failed: %s", e)
            self._on_auth_state(None)
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = callback
        callback(self._user)

        def unsubscribe():
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _on_auth_state(self, user: Optional[User]) -> None:
        self._user = user
        for callback in list(self._listeners.values()):
            callback(user)

    def __enter__(self) -> "SessionProvider":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
