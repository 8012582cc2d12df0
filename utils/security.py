import hashlib
import secrets

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from config import PASSWORD_HASH_ROUNDS


pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=PASSWORD_HASH_ROUNDS,
)

# stands in for a missing hash so unknown accounts cost one bcrypt check too
_DUMMY_HASH = pwd_context.hash(secrets.token_hex(16))


async def hash_password(password: str) -> str:
    """Hash a password with bcrypt off the event loop."""
    return await run_in_threadpool(pwd_context.hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a password against a stored bcrypt hash.

    Accounts created through an OAuth provider carry an empty hash and never
    match. An empty hash is still checked against a dummy so the answer takes
    as long as a real mismatch.
    """
    if not password:
        return False
    if not password_hash:
        await run_in_threadpool(pwd_context.verify, password, _DUMMY_HASH)
        return False
    try:
        return await run_in_threadpool(pwd_context.verify, password, password_hash)
    except ValueError:
        # unrecognized or malformed hash
        return False


def generate_verification_code() -> str:
    """Six decimal digits, uniform over 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


def generate_reset_token() -> str:
    """20 random bytes as 40 lowercase hex characters."""
    return secrets.token_hex(20)


def hash_token(token: str) -> str:
    """Hash the token for database storage"""
    return hashlib.sha256(token.encode()).hexdigest()
