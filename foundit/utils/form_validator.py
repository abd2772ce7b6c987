from typing import Literal, Optional
from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError

from foundit.models.post import PostDraft, PostKind
from foundit.services.auth import MIN_PASSWORD_LENGTH


class ValidatedPostForm(BaseModel):
    # blank title/description are rejected by the create command itself
    kind: Literal["lost", "found"] = "lost"
    title: str = Field(default="", max_length=120)
    description: str = Field(default="", max_length=2000)
    location: str = Field(default="", max_length=120)
    anonymous: bool = False

    def to_draft(self) -> PostDraft:
        return PostDraft(
            kind=PostKind(self.kind),
            title=self.title,
            description=self.description,
            location=self.location,
            anonymous=self.anonymous,
        )


class RegisterForm(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str
    confirm_password: str
    display_name: Optional[str] = Field(default=None, max_length=60)


class LoginForm(BaseModel):
    email: str
    password: str


def validate_post_form(
    kind: str,
    title: str,
    description: str,
    location: str,
    anonymous: bool,
) -> ValidatedPostForm:
    try:
        return ValidatedPostForm(
            kind=kind,
            title=(title or "").strip(),
            description=(description or "").strip(),
            location=(location or "").strip(),
            anonymous=anonymous,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False),
        )


def validate_register_form(form: RegisterForm) -> RegisterForm:
    if form.password != form.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match.")

    if len(form.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Use at least {MIN_PASSWORD_LENGTH} characters.")

    return RegisterForm(
        email=form.email.strip(),
        password=form.password,
        confirm_password=form.confirm_password,
        display_name=(form.display_name or "").strip() or None,
    )
