from fastapi import APIRouter

from routes.authorization import default_auth_router
from routes.authorization import oauth_router
from routes import user_router

router = APIRouter()

# The fixed /auth paths must be registered before the /auth/{provider} catch-all.
router.include_router(default_auth_router.router)
router.include_router(oauth_router.router)
router.include_router(user_router.router)
