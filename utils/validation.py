"""
Input checks for signup, login, password reset and profile update bodies.

Each validator returns a cleaned copy of the input or raises
InputValidationError with one ``{"path", "message"}`` entry per failing
field. Only the first failing rule of a field is reported.
"""

import html
from typing import Dict, List, Optional

from email_validator import validate_email, EmailNotValidError

from models.schemas.auth import SignupRequest, LoginRequest, UpdateUserRequest
from utils.errors import InputValidationError

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 8

GMAIL_DOMAINS = {"gmail.com", "googlemail.com"}


def normalize_email(email: str) -> str:
    """
    Canonical form of a syntactically valid address.

    The whole address is lowercased. For Gmail, dots and ``+tag`` suffixes
    in the local part are dropped and googlemail.com becomes gmail.com.
    Raises EmailNotValidError for anything that is not an address.
    """
    normalized = validate_email(email, check_deliverability=False).normalized
    local, domain = normalized.rsplit("@", 1)
    local, domain = local.lower(), domain.lower()

    if domain in GMAIL_DOMAINS:
        local = local.split("+", 1)[0].replace(".", "")
        domain = "gmail.com"

    return f"{local}@{domain}"


def _error(errors: List[Dict[str, str]], path: str, message: str):
    errors.append({"path": path, "message": message})


def _check_name(errors, value: Optional[str]) -> str:
    name = html.escape((value or "").strip())
    if not name:
        _error(errors, "name", "Name is required")
    elif not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        _error(errors, "name", f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")
    return name


def _check_password(errors, value: Optional[str], required_message: str, short_message: str) -> str:
    password = value or ""
    if not password:
        _error(errors, "password", required_message)
    elif len(password) < PASSWORD_MIN_LENGTH:
        _error(errors, "password", short_message)
    return password


def _check_email(errors, value: Optional[str], required_message: str) -> Optional[str]:
    value = (value or "").strip()
    if not value:
        _error(errors, "email", required_message)
        return None
    try:
        return normalize_email(value)
    except EmailNotValidError:
        _error(errors, "email", "Invalid email address")
        return None


def canonical_email(value: Optional[str]) -> str:
    """Best-effort canonical form for lookups of bodies that are not validated."""
    value = (value or "").strip()
    try:
        return normalize_email(value)
    except EmailNotValidError:
        return value.lower()


def validate_signup(payload: SignupRequest) -> SignupRequest:
    errors = []
    name = _check_name(errors, payload.name)
    email = _check_email(errors, payload.email, "Email is required")
    password = _check_password(
        errors,
        (payload.password or "").strip(),
        "Password is required",
        f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
    )
    if errors:
        raise InputValidationError(errors)
    return SignupRequest(name=name, email=email, password=password)


def validate_login(payload: LoginRequest) -> LoginRequest:
    errors = []
    email = _check_email(errors, payload.email, "Email is a required field")
    password = _check_password(errors, payload.password, "Password is a required field", "Password is too short")
    if errors:
        raise InputValidationError(errors)
    return LoginRequest(email=email, password=password)


def validate_new_password(password: Optional[str]) -> str:
    errors = []
    password = _check_password(
        errors,
        (password or "").strip(),
        "Password is required",
        f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
    )
    if errors:
        raise InputValidationError(errors)
    return password


def validate_user_update(payload: UpdateUserRequest) -> UpdateUserRequest:
    """Only the fields present in the body are checked."""
    errors = []
    name = _check_name(errors, payload.name) if payload.name is not None else None
    password = None
    if payload.password is not None:
        password = _check_password(
            errors,
            payload.password.strip(),
            "Password is required",
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
        )
    if errors:
        raise InputValidationError(errors)
    return UpdateUserRequest(name=name, avatar=payload.avatar, password=password)
