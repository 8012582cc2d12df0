import os

# config.py reads these at import time
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-client-secret")
os.environ.setdefault("CLIENT_URL", "http://localhost:5173")

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from config import TOKEN_COOKIE_NAME
from jwt_handler import issue_token
from models.database import UserStore, fold_email
from models.user import User, UserPatch
from routes.authorization.oauth_coordinator import OAuthCoordinator
from utils import timeutils
from utils.errors import Conflict, MailError, OAuthError
from utils.oauth_providers import OAuthProfile, OAuthProvider


class InMemoryUserStore(UserStore):
    """Dict-backed user store with the same uniqueness and expiry rules as Mongo."""

    def __init__(self):
        self.users: Dict[str, User] = {}

    def add(self, user: User) -> User:
        user = user.model_copy(update={"email": fold_email(user.email)})
        self._check_unique(user)
        self.users[user.id] = user
        return user

    def _check_unique(self, user: User):
        for other in self.users.values():
            if other.id == user.id:
                continue
            if user.email and other.email == user.email:
                raise Conflict("User already exists")
            if user.username and other.username == user.username:
                raise Conflict("User already exists")

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        email = fold_email(email)
        return next((u for u in self.users.values() if email and u.email == email), None)

    async def find_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users.values() if username and u.username == username), None)

    async def find_by_verification_token(self, token: str, now: datetime) -> Optional[User]:
        return next((
            u for u in self.users.values()
            if u.verification_token == token and u.verification_token_expires_at
            and u.verification_token_expires_at > now
        ), None)

    async def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        return next((
            u for u in self.users.values()
            if u.reset_password_token == token and u.reset_password_expires_at
            and u.reset_password_expires_at > now
        ), None)

    async def insert(self, user: User) -> User:
        now = timeutils.utcnow()
        return self.add(user.model_copy(update={"created_at": now, "updated_at": now}))

    async def update(self, user_id: str, patch: UserPatch) -> Optional[User]:
        user = self.users.get(user_id)
        if not user:
            return None
        changes = patch.changes()
        if "email" in changes:
            changes["email"] = fold_email(changes["email"])
        updated = user.model_copy(update={**changes, "updated_at": timeutils.utcnow()})
        self._check_unique(updated)
        self.users[user_id] = updated
        return updated

    async def delete_by_id(self, user_id: str) -> bool:
        return self.users.pop(user_id, None) is not None

    async def list_users(self) -> List[User]:
        return list(self.users.values())


class FakeMailer:
    """Records every mail instead of sending it; ``failing`` makes every send raise."""

    def __init__(self):
        self.sent = []
        self.failing = False

    def _record(self, kind, email, value=None):
        if self.failing:
            raise MailError("Error sending email: SMTP unavailable")
        self.sent.append((kind, email, value))

    async def send_verification(self, email, code):
        self._record("verification", email, code)

    async def send_welcome(self, email, name):
        self._record("welcome", email, name)

    async def send_password_reset(self, email, reset_url):
        self._record("password_reset", email, reset_url)

    async def send_reset_success(self, email):
        self._record("reset_success", email)

    def last(self, kind):
        return next((value for k, _, value in reversed(self.sent) if k == kind), None)

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


class FakeProvider(OAuthProvider):
    """Provider that never leaves the process; code ``bad`` fails the exchange."""

    authorize_endpoint = "https://provider.test/authorize"

    def __init__(self, name: str, profile: OAuthProfile):
        super().__init__("fake-client-id", "fake-client-secret", scopes=["profile"])
        self.name = name
        self.profile = profile
        self.exchanged = []

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        if code == "bad":
            raise OAuthError("Error exchanging code for tokens")
        self.exchanged.append((code, redirect_uri))
        return {"access_token": f"access-{code}"}

    async def fetch_profile(self, tokens: dict) -> OAuthProfile:
        return self.profile


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))
    monkeypatch.setattr(timeutils, "utcnow", frozen)
    return frozen


@pytest.fixture
def store():
    return InMemoryUserStore()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def providers():
    return {
        "google": FakeProvider("google", OAuthProfile(
            provider="google", id="g-1", display_name="Grace Hopper",
            emails=["grace@example.com"], avatar="https://img.test/grace.png",
        )),
        "github": FakeProvider("github", OAuthProfile(
            provider="github", id="42", display_name="Linus", username="linus",
        )),
        "facebook": FakeProvider("facebook", OAuthProfile(
            provider="facebook", id="777", display_name="Mark",
        )),
    }


@pytest.fixture
def coordinator(providers, store):
    return OAuthCoordinator(providers, store)


@pytest.fixture
def app(store, mailer, coordinator):
    from main import create_app

    return create_app(user_store=store, mailer=mailer, oauth_coordinator=coordinator)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_factory(store):
    """Create stored users: ``user_factory(email=..., is_admin=True)``."""
    counter = {"n": 0}

    def factory(**fields) -> User:
        counter["n"] += 1
        defaults = {
            "name": f"User {counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "is_verified": True,
        }
        return store.add(User(**{**defaults, **fields}))

    return factory


@pytest.fixture
def login_as(client):
    """Put a credential cookie for ``user`` into the test client's jar."""

    def login(user: User):
        client.cookies.clear()
        client.cookies.set(TOKEN_COOKIE_NAME, issue_token(user.id, user.is_admin))

    return login
