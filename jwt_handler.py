import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import jwt

from config import (
    JWT_SECRET,
    JWT_ALGORITHM,
    SESSION_SECRET,
    TOKEN_LIFETIME,
    OAUTH_STATE_LIFETIME,
)
from utils import timeutils
from utils.errors import InvalidOrExpiredToken, ServerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Claims carried by the credential token."""

    user_id: str
    is_admin: bool = False


def issue_token(user_id: str, is_admin: bool, now: Optional[datetime] = None) -> str:
    """
    Create the credential token stored in the ``token`` cookie.

    The payload holds only the user id and the admin flag, and expires
    seven days after issue.
    """
    issued_at = now or timeutils.utcnow()
    payload = {
        "userId": str(user_id),
        "isAdmin": bool(is_admin),
        "iat": issued_at,
        "exp": issued_at + TOKEN_LIFETIME,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def validate_token(token: str, leeway_seconds: int = 0) -> Identity:
    """
    Verify signature and expiry of a credential token.

    Raises InvalidOrExpiredToken for anything the client sent wrong and
    ServerError when the signing layer itself is unusable.
    """
    if not JWT_SECRET:
        raise ServerError("Token signing secret is not configured")

    try:
        payload = jwt.decode(
            token,
            key=JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            leeway=leeway_seconds,
            options={"require": ["exp", "userId"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidOrExpiredToken("Unauthorized - token expired", status_code=401)
    except jwt.PyJWTError as e:
        logger.warning(f"Rejected credential token: {e}")
        raise InvalidOrExpiredToken("Unauthorized - invalid token", status_code=401)
    except Exception as e:
        logger.error(f"Token validation fault: {e}")
        raise ServerError()

    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not user_id:
        raise InvalidOrExpiredToken("Unauthorized - invalid token", status_code=401)

    return Identity(user_id=user_id, is_admin=payload.get("isAdmin") is True)


def sign_oauth_state(state: str, provider: str, now: Optional[datetime] = None) -> str:
    """Bind an OAuth ``state`` value to the user agent via a short-lived signed cookie."""
    issued_at = now or timeutils.utcnow()
    payload = {
        "state": state,
        "provider": provider,
        "iat": issued_at,
        "exp": issued_at + OAUTH_STATE_LIFETIME,
    }
    return jwt.encode(payload, SESSION_SECRET, algorithm=JWT_ALGORITHM)


def read_oauth_state(cookie_value: str) -> dict:
    try:
        return jwt.decode(
            cookie_value,
            key=SESSION_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "state", "provider"]},
        )
    except jwt.PyJWTError as e:
        raise InvalidOrExpiredToken(f"Invalid OAuth state: {e}")
