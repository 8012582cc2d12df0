import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from utils import timeutils


def generate_user_id() -> str:
    return str(uuid.uuid4())


class User(BaseModel):
    """
    One account record as held by the user store.

    Field names are snake_case in Python and camelCase in documents and JSON.
    ``password_hash`` is empty for accounts created through an OAuth provider.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=generate_user_id)
    name: str
    email: Optional[str] = None
    username: Optional[str] = None
    password_hash: str = ""
    is_verified: bool = False
    is_admin: bool = False
    avatar: Optional[str] = None
    last_login_at: datetime = Field(default_factory=lambda: timeutils.utcnow())
    created_at: datetime = Field(default_factory=lambda: timeutils.utcnow())
    updated_at: datetime = Field(default_factory=lambda: timeutils.utcnow())
    verification_token: Optional[str] = None
    verification_token_expires_at: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_expires_at: Optional[datetime] = None

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        doc["_id"] = self.id
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "User":
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class UserPatch(BaseModel):
    """
    Partial update for a user record.

    Only fields explicitly set are written; a field set to ``None`` is
    cleared. ``is_admin`` and ``id`` are deliberately not patchable.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    password_hash: Optional[str] = None
    is_verified: Optional[bool] = None
    avatar: Optional[str] = None
    last_login_at: Optional[datetime] = None
    verification_token: Optional[str] = None
    verification_token_expires_at: Optional[datetime] = None
    reset_password_token: Optional[str] = None
    reset_password_expires_at: Optional[datetime] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class UserOut(BaseModel):
    """Sanitized user: no password hash and no flow tokens."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    email: Optional[str] = None
    username: Optional[str] = None
    is_verified: bool
    is_admin: bool
    avatar: Optional[str] = None
    last_login_at: datetime
    created_at: datetime
    updated_at: datetime


def sanitize_user(user: User) -> dict:
    out = UserOut.model_validate(user.model_dump())
    return out.model_dump(mode="json", by_alias=True)
