"""
OAuth 2.0 authorization-code clients for the supported identity providers.

A provider knows three things: how to build its authorize URL, how to trade
an authorization code for tokens, and how to turn those tokens into an
:class:`OAuthProfile`. Access tokens are used once and never stored.
"""

import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from starlette.concurrency import run_in_threadpool

from utils.errors import OAuthError

logger = logging.getLogger(__name__)


@dataclass
class OAuthProfile:
    provider: str
    id: str
    display_name: Optional[str] = None
    emails: List[str] = field(default_factory=list)
    username: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def primary_email(self) -> Optional[str]:
        return self.emails[0] if self.emails else None


class OAuthProvider:
    name = ""
    authorize_endpoint = ""
    token_endpoint = ""
    default_scopes: List[str] = []
    scope_separator = " "

    def __init__(self, client_id: str, client_secret: str, scopes: Optional[List[str]] = None,
                 timeout: float = 30.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes) if scopes is not None else list(self.default_scopes)
        self.timeout = timeout

    def extra_authorize_params(self) -> Dict[str, str]:
        return {}

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(self.scopes),
            "state": state,
            **self.extra_authorize_params(),
        }
        return f"{self.authorize_endpoint}?{urllib.parse.urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers={"Accept": "application/json"})

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """Exchange the authorization code for the provider's token response."""
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

        async with self._client() as client:
            try:
                logger.info(f"Exchanging {self.name} OAuth code for tokens")
                response = await client.post(self.token_endpoint, data=data)
                response.raise_for_status()
                token_data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"HTTP error during {self.name} token exchange: {e.response.status_code}")
                raise OAuthError("Error exchanging code for tokens")
            except httpx.HTTPError as e:
                logger.error(f"{self.name} token exchange failed: {e}")
                raise OAuthError("Token exchange failed")

        if not token_data.get("access_token"):
            raise OAuthError(f"{self.name} did not return an access token")
        return token_data

    async def _get_json(self, url: str, access_token: str, params: Optional[dict] = None):
        async with self._client() as client:
            try:
                response = await client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                logger.error(f"{self.name} profile request to {url} failed: {e}")
                raise OAuthError("Could not fetch provider profile")

    async def fetch_profile(self, tokens: dict) -> OAuthProfile:
        raise NotImplementedError


class GoogleProvider(OAuthProvider):
    name = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://www.googleapis.com/oauth2/v3/userinfo"
    default_scopes = ["profile", "email"]

    async def fetch_profile(self, tokens: dict) -> OAuthProfile:
        id_token_str = tokens.get("id_token")
        if id_token_str:
            try:
                claims = await run_in_threadpool(
                    id_token.verify_oauth2_token,
                    id_token_str,
                    google_requests.Request(),
                    self.client_id,
                )
            except ValueError as e:
                logger.error(f"Google ID token verification failed: {e}")
                raise OAuthError("Token verification failed")
        else:
            claims = await self._get_json(self.userinfo_endpoint, tokens["access_token"])

        if not claims.get("sub"):
            raise OAuthError("Google profile is missing the subject")

        return OAuthProfile(
            provider=self.name,
            id=str(claims["sub"]),
            display_name=claims.get("name"),
            emails=[claims["email"]] if claims.get("email") else [],
            avatar=claims.get("picture"),
        )


class GitHubProvider(OAuthProvider):
    name = "github"
    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    user_endpoint = "https://api.github.com/user"
    emails_endpoint = "https://api.github.com/user/emails"
    default_scopes = ["profile"]

    def extra_authorize_params(self) -> Dict[str, str]:
        return {"allow_signup": "true"}

    async def _primary_email(self, access_token: str) -> Optional[str]:
        # Needs the user:email scope; without it GitHub answers 404/403.
        try:
            emails = await self._get_json(self.emails_endpoint, access_token)
        except OAuthError:
            return None
        primary = next((e for e in emails if e.get("primary") and e.get("verified")), None)
        return primary.get("email") if primary else None

    async def fetch_profile(self, tokens: dict) -> OAuthProfile:
        access_token = tokens["access_token"]
        data = await self._get_json(self.user_endpoint, access_token)
        if not data.get("id"):
            raise OAuthError("GitHub profile is missing the user id")

        email = data.get("email") or await self._primary_email(access_token)
        return OAuthProfile(
            provider=self.name,
            id=str(data["id"]),
            display_name=data.get("name") or data.get("login"),
            emails=[email] if email else [],
            username=data.get("login"),
            avatar=data.get("avatar_url"),
        )


class FacebookProvider(OAuthProvider):
    name = "facebook"
    authorize_endpoint = "https://www.facebook.com/v19.0/dialog/oauth"
    token_endpoint = "https://graph.facebook.com/v19.0/oauth/access_token"
    profile_endpoint = "https://graph.facebook.com/v19.0/me"
    default_scopes = ["profile"]
    scope_separator = ","

    async def fetch_profile(self, tokens: dict) -> OAuthProfile:
        data = await self._get_json(
            self.profile_endpoint,
            tokens["access_token"],
            params={"fields": "id,name,email,picture"},
        )
        if not data.get("id"):
            raise OAuthError("Facebook profile is missing the user id")

        picture = (data.get("picture") or {}).get("data") or {}
        return OAuthProfile(
            provider=self.name,
            id=str(data["id"]),
            display_name=data.get("name"),
            emails=[data["email"]] if data.get("email") else [],
            avatar=picture.get("url"),
        )


PROVIDER_NAMES = tuple(cls.name for cls in (GoogleProvider, GitHubProvider, FacebookProvider))
