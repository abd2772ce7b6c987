from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

from foundit.config import get_settings
from foundit.dependencies import get_account_directory, get_verifier
from foundit.errors import NotAuthenticatedError
from foundit.models.user import User
from foundit.services.auth import LocalAuthService
from foundit.viewmodels.session import SessionProvider

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user: User) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)

    payload = {
        "sub": user.uid,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expire_minutes),
    }

    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None

    try:
        return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None


def open_session(token: Optional[str]) -> SessionProvider:
    """Build a session whose auth state starts at the user the token names (or nobody)."""
    directory = get_account_directory()

    payload = decode_access_token(token)
    user = directory.get(payload["sub"]) if payload and payload.get("sub") else None

    auth = LocalAuthService(directory, get_verifier(), current_user=user)
    return SessionProvider(auth).open()


@contextmanager
def session_scope(token: Optional[str]):
    session = open_session(token)
    try:
        yield session
    finally:
        session.close()


def get_session_optional(token: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    with session_scope(token.credentials if token else None) as session:
        yield session


def get_session_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    with session_scope(token.credentials if token else None) as session:
        if not session.is_authenticated:
            raise NotAuthenticatedError("Invalid or expired token")
        yield session
