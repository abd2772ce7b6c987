from typing import Optional
from sqlmodel import SQLModel

from foundit.models.account import Account


class User(SQLModel):
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "User":
        return cls(
            uid=account.uid,
            display_name=account.display_name,
            email=account.email,
            photo_url=account.photo_url,
        )

    def author_name(self, anonymous: bool = False) -> str:
        if anonymous:
            return "Anonymous"

        if self.display_name:
            return self.display_name

        if self.email and self.email.split("@")[0]:
            return self.email.split("@")[0]

        return "Unknown"
