import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from starlette.convertors import Convertor, register_url_convertor

from config import CLIENT_URL, OAUTH_FAILURE_REDIRECT
from jwt_handler import issue_token
from routes.authorization.oauth_coordinator import OAuthCoordinator, UnknownProvider
from routes.dependencies import get_oauth_coordinator
from utils.cookies import (
    OAUTH_STATE_COOKIE_NAME,
    set_auth_cookie,
    set_oauth_state_cookie,
    clear_oauth_state_cookie,
)
from utils.errors import AuthError
from utils.oauth_providers import PROVIDER_NAMES

logger = logging.getLogger(__name__)


class ProviderConvertor(Convertor):
    """Matches only known provider names, so other /auth paths keep their 405s."""

    regex = "|".join(PROVIDER_NAMES)

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value


register_url_convertor("oauth_provider", ProviderConvertor())

router = APIRouter(prefix="/auth", tags=["oauth"])


def _callback_url(request: Request, provider: str) -> str:
    return str(request.url_for("oauth_callback", provider=provider))


@router.get("/{provider:oauth_provider}")
async def oauth_login(
        provider: str,
        request: Request,
        coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
):
    try:
        url, state_cookie = coordinator.begin(provider, _callback_url(request, provider))
    except UnknownProvider:
        raise HTTPException(status_code=404, detail="Unknown provider")

    logger.info(f"Redirecting to {provider} for OAuth login")
    response = RedirectResponse(url=url, status_code=302)
    set_oauth_state_cookie(response, state_cookie)
    return response


@router.get("/{provider:oauth_provider}/callback", name="oauth_callback")
async def oauth_callback(
        provider: str,
        request: Request,
        coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
):
    params = request.query_params
    try:
        user = await coordinator.complete(
            provider,
            _callback_url(request, provider),
            code=params.get("code"),
            state=params.get("state"),
            state_cookie=request.cookies.get(OAUTH_STATE_COOKIE_NAME),
            error=params.get("error"),
        )
    except UnknownProvider:
        raise HTTPException(status_code=404, detail="Unknown provider")
    except (AuthError, httpx.HTTPError) as e:
        logger.warning(f"{provider} OAuth login failed: {e}")
        return _failure_redirect()
    except Exception as e:
        logger.error(f"Unexpected {provider} OAuth error: {str(e)}")
        return _failure_redirect()

    response = RedirectResponse(url=CLIENT_URL, status_code=302)
    set_auth_cookie(response, issue_token(user.id, user.is_admin))
    clear_oauth_state_cookie(response)
    logger.info(f"{provider} authentication successful for user {user.id}")
    return response


def _failure_redirect() -> RedirectResponse:
    response = RedirectResponse(url=OAUTH_FAILURE_REDIRECT, status_code=302)
    clear_oauth_state_cookie(response)
    return response
