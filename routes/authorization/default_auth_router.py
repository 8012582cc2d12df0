import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from config import (
    CLIENT_URL,
    TOKEN_COOKIE_NAME,
    VERIFICATION_CODE_LIFETIME,
    RESET_TOKEN_LIFETIME,
)
from jwt_handler import Identity, issue_token, validate_token
from models.database import UserStore
from models.schemas.auth import (
    SignupRequest,
    LoginRequest,
    VerifyEmailRequest,
    EmailRequest,
    ResetPasswordRequest,
)
from models.user import User, UserPatch, sanitize_user
from routes.dependencies import get_user_store, get_mailer, require_auth
from utils import timeutils
from utils.cookies import set_auth_cookie, clear_auth_cookie
from utils.errors import (
    AuthError,
    Conflict,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    ServerError,
)
from utils.security import (
    hash_password,
    verify_password,
    generate_verification_code,
    generate_reset_token,
    hash_token,
)
from utils.validation import (
    validate_signup,
    validate_login,
    validate_new_password,
    canonical_email,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authorization"])


async def signup_body(payload: SignupRequest) -> SignupRequest:
    return validate_signup(payload)


async def login_body(payload: LoginRequest) -> LoginRequest:
    return validate_login(payload)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def sign_up(
        response: Response,
        payload: SignupRequest = Depends(signup_body),
        store: UserStore = Depends(get_user_store),
        mailer=Depends(get_mailer),
):
    logger.info("User signup attempt")

    if not payload.email or not payload.password or not payload.name:
        raise AuthError("All fields are required", status_code=400)

    try:
        if await store.find_by_email(payload.email):
            raise Conflict("User already exists")

        code = generate_verification_code()
        now = timeutils.utcnow()
        user = await store.insert(User(
            name=payload.name,
            email=payload.email,
            password_hash=await hash_password(payload.password),
            is_verified=False,
            last_login_at=now,
            verification_token=hash_token(code),
            verification_token_expires_at=now + VERIFICATION_CODE_LIFETIME,
        ))

        set_auth_cookie(response, issue_token(user.id, user.is_admin))

        # The record stays even if this fails; the client can ask for a resend.
        await mailer.send_verification(user.email, code)

    except Conflict:
        logger.warning("Signup rejected: email already registered")
        raise
    except AuthError as e:
        logger.error(f"Signup error: {e.message}")
        raise AuthError(e.message, status_code=400)
    except Exception as e:
        logger.error(f"Signup error: {str(e)}")
        raise AuthError(str(e), status_code=400)

    logger.info(f"Signup completed for user {user.id}")
    return {
        "success": True,
        "message": "User created successfully",
        "user": sanitize_user(user),
    }


@router.post("/verify-email")
async def verify_email(
        payload: VerifyEmailRequest,
        store: UserStore = Depends(get_user_store),
        mailer=Depends(get_mailer),
):
    code = str(payload.code).strip() if payload.code is not None else ""

    try:
        user = None
        if code:
            user = await store.find_by_verification_token(hash_token(code), timeutils.utcnow())
        if not user:
            raise InvalidOrExpiredToken("Invalid or expired verification code")

        user = await store.update(user.id, UserPatch(
            is_verified=True,
            verification_token=None,
            verification_token_expires_at=None,
        ))
        if not user:
            raise ServerError()

        await mailer.send_welcome(user.email, user.name)

    except InvalidOrExpiredToken:
        logger.warning("Email verification rejected: invalid or expired code")
        raise
    except Exception as e:
        logger.error(f"Email verification failed: {str(e)}")
        raise ServerError()

    logger.info(f"Email verified for user {user.id}")
    return {
        "success": True,
        "message": "Email verified successfully",
        "user": sanitize_user(user),
    }


@router.post("/resend-verification")
async def resend_verification(
        payload: EmailRequest,
        store: UserStore = Depends(get_user_store),
        mailer=Depends(get_mailer),
):
    email = canonical_email(payload.email)
    if not email:
        raise AuthError("Email is required", status_code=400)

    try:
        user = await store.find_by_email(email)
        if not user:
            raise NotFound("User not found")
        if user.is_verified:
            raise AuthError("Email already verified", status_code=400)

        code = generate_verification_code()
        await store.update(user.id, UserPatch(
            verification_token=hash_token(code),
            verification_token_expires_at=timeutils.utcnow() + VERIFICATION_CODE_LIFETIME,
        ))
        await mailer.send_verification(user.email, code)

    except AuthError:
        raise
    except Exception as e:
        logger.error(f"Failed to resend verification: {e}")
        raise ServerError()

    return {"success": True, "message": "Verification email sent"}


@router.post("/login")
async def login(
        response: Response,
        payload: LoginRequest = Depends(login_body),
        store: UserStore = Depends(get_user_store),
):
    try:
        user = await store.find_by_email(payload.email)

        # Unknown email and wrong password are indistinguishable to the caller,
        # in body and in timing
        password_hash = user.password_hash if user else ""
        if not await verify_password(payload.password, password_hash) or not user:
            raise InvalidCredentials()

        user = await store.update(user.id, UserPatch(last_login_at=timeutils.utcnow())) or user
        set_auth_cookie(response, issue_token(user.id, user.is_admin))

    except InvalidCredentials:
        logger.warning("Login rejected: invalid credentials")
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise ServerError()

    logger.info(f"User {user.id} logged in")
    return {
        "success": True,
        "message": "Logged in successfully",
        "user": sanitize_user(user),
    }


@router.post("/logout")
async def logout(response: Response):
    clear_auth_cookie(response)
    logger.info("User logged out")
    return {"success": True, "message": "Logged out successfully"}


@router.post("/forgot-password")
async def forgot_password(
        payload: EmailRequest,
        store: UserStore = Depends(get_user_store),
        mailer=Depends(get_mailer),
):
    try:
        user = await store.find_by_email(canonical_email(payload.email))
        if not user:
            raise NotFound("User not found")

        reset_token = generate_reset_token()
        await store.update(user.id, UserPatch(
            reset_password_token=hash_token(reset_token),
            reset_password_expires_at=timeutils.utcnow() + RESET_TOKEN_LIFETIME,
        ))

        await mailer.send_password_reset(user.email, f"{CLIENT_URL}/reset-password/{reset_token}")

    except AuthError:
        raise
    except Exception as e:
        logger.error(f"Forgot password error: {e}")
        raise ServerError()

    logger.info(f"Password reset requested for user {user.id}")
    return {"success": True, "message": "Password reset link sent to your email"}


@router.post("/reset-password/{token}")
async def reset_password(
        token: str,
        payload: ResetPasswordRequest,
        store: UserStore = Depends(get_user_store),
        mailer=Depends(get_mailer),
):
    password = validate_new_password(payload.password)

    try:
        user = await store.find_by_reset_token(hash_token(token), timeutils.utcnow())
        if not user:
            raise InvalidOrExpiredToken("Invalid or expired reset token")

        user = await store.update(user.id, UserPatch(
            password_hash=await hash_password(password),
            reset_password_token=None,
            reset_password_expires_at=None,
        ))
        if not user:
            raise ServerError()

        await mailer.send_reset_success(user.email)

    except InvalidOrExpiredToken:
        logger.warning("Password reset rejected: invalid or expired token")
        raise
    except AuthError:
        raise
    except Exception as e:
        logger.error(f"Reset password error: {e}")
        raise ServerError()

    logger.info(f"Password reset completed for user {user.id}")
    return {"success": True, "message": "Password reset successful"}


@router.get("/check-auth")
async def check_auth(
        identity: Identity = Depends(require_auth),
        store: UserStore = Depends(get_user_store),
):
    try:
        user = await store.find_by_id(identity.user_id)
    except Exception as e:
        logger.error(f"Check auth error: {e}")
        raise ServerError()

    if not user:
        raise NotFound("User not found")
    return {"success": True, "user": sanitize_user(user)}


@router.get("/login/success")
async def login_success(request: Request, store: UserStore = Depends(get_user_store)):
    """Report the current session after an OAuth redirect; empty when there is none."""
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if token:
        try:
            identity = validate_token(token)
            user = await store.find_by_id(identity.user_id)
        except AuthError:
            user = None
        if user:
            return {"success": True, "message": "Successful", "user": sanitize_user(user)}
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/login/failure")
async def login_failure():
    return JSONResponse(status_code=401, content={"success": False, "message": "Failure"})
