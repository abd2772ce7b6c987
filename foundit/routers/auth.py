import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from foundit.errors import AuthError
from foundit.services.auth import describe_auth_error
from foundit.utils.auth_helper import create_access_token, get_session_optional
from foundit.utils.form_validator import LoginForm, RegisterForm, validate_register_form
from foundit.viewmodels.session import SessionProvider

logger = logging.getLogger(__name__)

router = APIRouter()


class GoogleIDToken(BaseModel):
    id_token: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    display_name: str


def _signed_in(session: SessionProvider) -> TokenResponse:
    user = session.current_user

    return TokenResponse(
        access_token=create_access_token(user),
        user_id=user.uid,
        display_name=user.author_name(),
    )


def _readable(err: AuthError) -> AuthError:
    return AuthError(err.code, describe_auth_error(err))


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(form: RegisterForm, session: SessionProvider = Depends(get_session_optional)):
    form = validate_register_form(form)

    try:
        session.auth.register_with_credentials(form.email, form.password, form.display_name)
    except AuthError as e:
        logger.info("Registration for %s refused: %s", form.email, e.code)
        raise _readable(e) from e

    return _signed_in(session)


@router.post("/login", response_model=TokenResponse)
def login(form: LoginForm, session: SessionProvider = Depends(get_session_optional)):
    try:
        session.auth.sign_in_with_credentials(form.email.strip(), form.password)
    except AuthError as e:
        logger.info("Sign-in for %s refused: %s", form.email, e.code)
        raise _readable(e) from e

    return _signed_in(session)


@router.post("/google", response_model=TokenResponse)
def google_auth(payload: GoogleIDToken, session: SessionProvider = Depends(get_session_optional)):
    try:
        session.auth.sign_in_with_federated_provider(payload.id_token)
    except AuthError as e:
        logger.info("Google sign-in refused: %s", e.code)
        raise _readable(e) from e

    return _signed_in(session)


@router.post("/logout")
def logout(session: SessionProvider = Depends(get_session_optional)):
    # tokens are stateless; the client discards its copy
    session.auth.sign_out()
    return {"status": "ok", "authenticated": session.is_authenticated}

