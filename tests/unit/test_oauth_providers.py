from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from utils.errors import OAuthError
from utils.oauth_providers import GoogleProvider, GitHubProvider, FacebookProvider


def use_transport(provider, handler):
    """Route the provider's HTTP calls through ``handler`` instead of the network."""
    transport = httpx.MockTransport(handler)
    provider._client = lambda: httpx.AsyncClient(transport=transport)
    return provider


def query_of(url):
    return parse_qs(urlparse(url).query)


def test_authorization_urls():
    google = query_of(GoogleProvider("gid", "gsecret").authorization_url("http://cb", "s1"))
    github = query_of(GitHubProvider("hid", "hsecret").authorization_url("http://cb", "s2"))
    facebook = query_of(FacebookProvider("fid", "fsecret").authorization_url("http://cb", "s3"))

    assert google["scope"] == ["profile email"]
    assert google["state"] == ["s1"]
    assert github["scope"] == ["profile"]
    assert github["allow_signup"] == ["true"]
    assert facebook["scope"] == ["profile"]
    assert facebook["client_id"] == ["fid"]


def test_scopes_are_configurable():
    provider = FacebookProvider("fid", "fsecret", scopes=["email", "public_profile"])
    assert query_of(provider.authorization_url("http://cb", "s"))["scope"] == ["email,public_profile"]


@pytest.mark.asyncio
async def test_exchange_code_posts_form():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "at-1", "id_token": "idt"})

    provider = use_transport(GoogleProvider("gid", "gsecret"), handler)
    tokens = await provider.exchange_code("the-code", "http://cb")

    assert tokens["access_token"] == "at-1"
    assert seen["url"] == "https://oauth2.googleapis.com/token"
    assert seen["form"]["code"] == ["the-code"]
    assert seen["form"]["grant_type"] == ["authorization_code"]
    assert seen["form"]["client_secret"] == ["gsecret"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"error": "invalid_grant"}),
    httpx.Response(200, json={"error": "bad_verification_code"}),
])
async def test_exchange_code_failures(response):
    provider = use_transport(GitHubProvider("hid", "hsecret"), lambda request: response)

    with pytest.raises(OAuthError):
        await provider.exchange_code("the-code", "http://cb")


@pytest.mark.asyncio
async def test_exchange_code_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    provider = use_transport(GoogleProvider("gid", "gsecret"), handler)

    with pytest.raises(OAuthError):
        await provider.exchange_code("the-code", "http://cb")


@pytest.mark.asyncio
async def test_google_profile_from_id_token():
    claims = {"sub": "g-1", "name": "Grace Hopper", "email": "grace@example.com", "picture": "https://img.test/g.png"}
    provider = GoogleProvider("gid", "gsecret")

    with patch("utils.oauth_providers.id_token.verify_oauth2_token", return_value=claims) as verify:
        profile = await provider.fetch_profile({"access_token": "at", "id_token": "idt"})

    assert verify.call_args.args[0] == "idt"
    assert verify.call_args.args[2] == "gid"
    assert profile.id == "g-1"
    assert profile.primary_email == "grace@example.com"
    assert profile.avatar == "https://img.test/g.png"


@pytest.mark.asyncio
async def test_google_invalid_id_token():
    provider = GoogleProvider("gid", "gsecret")

    with patch("utils.oauth_providers.id_token.verify_oauth2_token", side_effect=ValueError("Wrong audience")):
        with pytest.raises(OAuthError):
            await provider.fetch_profile({"access_token": "at", "id_token": "idt"})


@pytest.mark.asyncio
async def test_google_profile_from_userinfo():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer at"
        return httpx.Response(200, json={"sub": "g-2", "name": "Alan", "email": "alan@example.com"})

    provider = use_transport(GoogleProvider("gid", "gsecret"), handler)
    profile = await provider.fetch_profile({"access_token": "at"})

    assert profile.id == "g-2"
    assert profile.emails == ["alan@example.com"]


@pytest.mark.asyncio
async def test_github_profile_with_private_email():
    def handler(request):
        if request.url.path == "/user":
            return httpx.Response(200, json={
                "id": 42, "login": "linus", "name": None, "email": None,
                "avatar_url": "https://img.test/l.png",
            })
        return httpx.Response(200, json=[
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "linus@example.com", "primary": True, "verified": True},
        ])

    provider = use_transport(GitHubProvider("hid", "hsecret"), handler)
    profile = await provider.fetch_profile({"access_token": "at"})

    assert profile.id == "42"
    assert profile.username == "linus"
    assert profile.display_name == "linus"
    assert profile.primary_email == "linus@example.com"


@pytest.mark.asyncio
async def test_github_profile_without_email_scope():
    def handler(request):
        if request.url.path == "/user":
            return httpx.Response(200, json={"id": 42, "login": "linus", "name": "Linus"})
        return httpx.Response(404, json={"message": "Not Found"})

    provider = use_transport(GitHubProvider("hid", "hsecret"), handler)
    profile = await provider.fetch_profile({"access_token": "at"})

    assert profile.emails == []


@pytest.mark.asyncio
async def test_facebook_profile():
    def handler(request):
        assert request.url.params["fields"] == "id,name,email,picture"
        return httpx.Response(200, json={
            "id": "777", "name": "Mark",
            "picture": {"data": {"url": "https://img.test/m.png"}},
        })

    provider = use_transport(FacebookProvider("fid", "fsecret"), handler)
    profile = await provider.fetch_profile({"access_token": "at"})

    assert profile.id == "777"
    assert profile.primary_email is None
    assert profile.avatar == "https://img.test/m.png"
