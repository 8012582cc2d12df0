import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import (
    CLIENT_URL,
    LOG_LEVEL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GITHUB_CLIENT_ID,
    GITHUB_CLIENT_SECRET,
    FACEBOOK_APP_ID,
    FACEBOOK_APP_SECRET,
)
from models.database import MongoUserStore, UserStore
from routes.authorization.oauth_coordinator import OAuthCoordinator
from routes.router import router as main_router
from utils.email_utils import SMTPMailer
from utils.errors import AuthError, InputValidationError
from utils.oauth_providers import GoogleProvider, GitHubProvider, FacebookProvider

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_providers() -> dict:
    providers = {"google": GoogleProvider(GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET)}
    if GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET:
        providers["github"] = GitHubProvider(GITHUB_CLIENT_ID, GITHUB_CLIENT_SECRET)
    if FACEBOOK_APP_ID and FACEBOOK_APP_SECRET:
        providers["facebook"] = FacebookProvider(FACEBOOK_APP_ID, FACEBOOK_APP_SECRET)
    logger.info(f"OAuth providers enabled: {', '.join(sorted(providers))}")
    return providers


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = app.state.user_store
    if isinstance(store, MongoUserStore):
        await store.ensure_indexes()
    yield
    if isinstance(store, MongoUserStore):
        await store.close()


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError):
        return JSONResponse(status_code=exc.status_code, content=exc.errors)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "path": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(status_code=422, content=errors)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"message": exc.detail}},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": {"message": str(exc) or "Internal server error"}},
        )


def create_app(
        user_store: UserStore = None,
        mailer=None,
        oauth_coordinator: OAuthCoordinator = None,
) -> FastAPI:
    app = FastAPI(
        title="Auth Service",
        description="Accounts, sessions and federated login",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.user_store = user_store or MongoUserStore()
    app.state.mailer = mailer or SMTPMailer()
    app.state.oauth_coordinator = oauth_coordinator or OAuthCoordinator(
        build_providers(), app.state.user_store
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(main_router)

    @app.get("/")
    def root():
        return {"message": "Auth service is running. POST /auth/signup or GET /auth/google to start."}

    return app


app = create_app()
