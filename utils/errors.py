"""
Error kinds raised by the authentication flows.

Every error carries the HTTP status it is rendered with and a client-facing
message. The handlers registered in ``main.py`` turn them into
``{"success": false, "message": ...}`` bodies.
"""

from typing import Dict, List


class AuthError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InputValidationError(AuthError):
    """Request body failed validation; rendered as a list of field errors."""

    status_code = 422
    message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__()
        self.errors = errors


class Conflict(AuthError):
    status_code = 400
    message = "User already exists"


class InvalidCredentials(AuthError):
    status_code = 400
    message = "Invalid credentials"


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    message = "Invalid or expired token"


class Unauthorized(AuthError):
    status_code = 401
    message = "Unauthorized - no token provided"


class Forbidden(AuthError):
    status_code = 403
    message = "You are not allowed to do that!"


class NotFound(AuthError):
    status_code = 400
    message = "User not found"


class MailError(AuthError):
    status_code = 500
    message = "Failed to send email"


class ServerError(AuthError):
    status_code = 500
    message = "Server error"


class OAuthError(AuthError):
    status_code = 400
    message = "OAuth login failed"
