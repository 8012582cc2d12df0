import logging
import secrets
from typing import Dict, Optional, Tuple

from jwt_handler import read_oauth_state, sign_oauth_state
from models.database import UserStore
from models.user import User, UserPatch
from utils import timeutils
from utils.errors import Conflict, InvalidOrExpiredToken, OAuthError
from utils.oauth_providers import OAuthProfile, OAuthProvider
from utils.validation import canonical_email

logger = logging.getLogger(__name__)


class UnknownProvider(LookupError):
    pass


class OAuthCoordinator:
    """
    Drives the authorization-code redirect flow for the configured providers.

    ``begin`` produces the provider redirect and the signed state cookie;
    ``complete`` checks the state, trades the code for a profile and
    reconciles it with a local account.
    """

    def __init__(self, providers: Dict[str, OAuthProvider], user_store: UserStore):
        self.providers = dict(providers)
        self.user_store = user_store

    def get_provider(self, name: str) -> OAuthProvider:
        try:
            return self.providers[name]
        except KeyError:
            raise UnknownProvider(name)

    def begin(self, provider_name: str, redirect_uri: str) -> Tuple[str, str]:
        provider = self.get_provider(provider_name)
        state = secrets.token_urlsafe(32)
        return provider.authorization_url(redirect_uri, state), sign_oauth_state(state, provider_name)

    def check_state(self, provider_name: str, state: Optional[str], state_cookie: Optional[str]):
        if not state or not state_cookie:
            raise OAuthError("Missing OAuth state")
        try:
            bound = read_oauth_state(state_cookie)
        except InvalidOrExpiredToken as e:
            raise OAuthError(e.message)
        expected = str(bound["state"]).encode()
        if bound["provider"] != provider_name or not secrets.compare_digest(expected, state.encode()):
            raise OAuthError("OAuth state mismatch")

    async def complete(
            self,
            provider_name: str,
            redirect_uri: str,
            code: Optional[str],
            state: Optional[str],
            state_cookie: Optional[str],
            error: Optional[str] = None,
    ) -> User:
        provider = self.get_provider(provider_name)
        if error:
            raise OAuthError(f"Provider returned an error: {error}")
        self.check_state(provider_name, state, state_cookie)
        if not code:
            raise OAuthError("Authorization code is missing")

        tokens = await provider.exchange_code(code, redirect_uri)
        profile = await provider.fetch_profile(tokens)
        return await self.reconcile(provider_name, profile)

    async def _lookup(self, provider_name: str, profile: OAuthProfile) -> Tuple[Optional[User], User]:
        """Return the matching account, if any, and the record to create otherwise."""
        name = profile.display_name or profile.username or "User"
        # canonical form, as stored by local signup
        email = canonical_email(profile.primary_email) if profile.primary_email else None

        if provider_name == "github":
            username = profile.username or f"github_{profile.id}"
            existing = await self.user_store.find_by_username(username)
            candidate = User(name=name, username=username, email=email,
                             avatar=profile.avatar, is_verified=True, password_hash="")
            return existing, candidate

        if email:
            existing = await self.user_store.find_by_email(email)
            candidate = User(name=name, email=email, avatar=profile.avatar,
                             is_verified=True, password_hash="")
            return existing, candidate

        if provider_name == "facebook":
            username = f"facebook_{profile.id}"
            existing = await self.user_store.find_by_username(username)
            candidate = User(name=name, username=username, avatar=profile.avatar,
                             is_verified=True, password_hash="")
            return existing, candidate

        raise OAuthError(f"{provider_name} did not return an email address")

    async def reconcile(self, provider_name: str, profile: OAuthProfile) -> User:
        existing, candidate = await self._lookup(provider_name, profile)

        if existing:
            logger.info(f"{provider_name} login matched user {existing.id}")
            updated = await self.user_store.update(existing.id, UserPatch(last_login_at=timeutils.utcnow()))
            return updated or existing

        try:
            user = await self.user_store.insert(candidate)
        except Conflict:
            # Lost a race with a concurrent first login, or the email belongs
            # to an account matched by a different key.
            existing, _ = await self._lookup(provider_name, profile)
            if existing:
                return existing
            raise OAuthError("An account with this email already exists")

        logger.info(f"Created user {user.id} from {provider_name} profile")
        return user
