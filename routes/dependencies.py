import logging

from fastapi import Depends, Request

from config import TOKEN_COOKIE_NAME
from jwt_handler import Identity, validate_token
from utils.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)


def get_user_store(request: Request):
    return request.app.state.user_store


def get_mailer(request: Request):
    return request.app.state.mailer


def get_oauth_coordinator(request: Request):
    return request.app.state.oauth_coordinator


async def require_auth(request: Request) -> Identity:
    """
    Read the credential cookie and attach the caller's identity to the request.

    401 when the cookie is missing or the token is invalid or expired, 500
    when the token could not be checked at all.
    """
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if not token:
        logger.warning(f"No credential cookie on {request.method} {request.url.path}")
        raise Unauthorized("Unauthorized - no token provided")

    identity = validate_token(token)
    request.state.identity = identity
    return identity


async def require_owner_or_admin(request: Request, identity: Identity = Depends(require_auth)) -> Identity:
    if identity.is_admin or identity.user_id == request.path_params.get("id"):
        return identity
    logger.warning(f"User {identity.user_id} denied access to {request.url.path}")
    raise Forbidden()


async def require_admin(request: Request, identity: Identity = Depends(require_auth)) -> Identity:
    if identity.is_admin:
        return identity
    logger.warning(f"Non-admin {identity.user_id} denied access to {request.url.path}")
    raise Forbidden()
