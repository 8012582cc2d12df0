from starlette.responses import Response

from config import (
    IS_PRODUCTION,
    TOKEN_COOKIE_NAME,
    TOKEN_LIFETIME,
    OAUTH_STATE_LIFETIME,
)

OAUTH_STATE_COOKIE_NAME = "oauth_state"
OAUTH_STATE_COOKIE_PATH = "/auth"


def get_cookie_settings() -> dict:
    """Attributes of the credential cookie."""
    return {
        "httponly": True,
        "secure": IS_PRODUCTION,
        "samesite": "strict",
        "max_age": int(TOKEN_LIFETIME.total_seconds()),
        "path": "/",
    }


def set_auth_cookie(response: Response, token: str):
    response.set_cookie(key=TOKEN_COOKIE_NAME, value=token, **get_cookie_settings())


def clear_auth_cookie(response: Response):
    settings = get_cookie_settings()
    response.delete_cookie(
        key=TOKEN_COOKIE_NAME,
        path=settings["path"],
        secure=settings["secure"],
        httponly=settings["httponly"],
        samesite=settings["samesite"],
    )


# The state cookie must come back on the provider's cross-site redirect,
# so it is Lax rather than Strict.
def set_oauth_state_cookie(response: Response, value: str):
    response.set_cookie(
        key=OAUTH_STATE_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        max_age=int(OAUTH_STATE_LIFETIME.total_seconds()),
        path=OAUTH_STATE_COOKIE_PATH,
    )


def clear_oauth_state_cookie(response: Response):
    response.delete_cookie(
        key=OAUTH_STATE_COOKIE_NAME,
        path=OAUTH_STATE_COOKIE_PATH,
        secure=IS_PRODUCTION,
        httponly=True,
        samesite="lax",
    )
