import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response

from jwt_handler import Identity
from models.database import UserStore
from models.schemas.auth import UpdateUserRequest
from models.user import UserPatch, sanitize_user
from routes.dependencies import (
    get_user_store,
    require_auth,
    require_admin,
    require_owner_or_admin,
)
from utils.cookies import clear_auth_cookie
from utils.errors import NotFound
from utils.security import hash_password
from utils.validation import validate_user_update

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.put("/update/{id}")
async def update_user(
        id: str,
        payload: Optional[UpdateUserRequest] = None,
        identity: Identity = Depends(require_owner_or_admin),
        store: UserStore = Depends(get_user_store),
):
    data = validate_user_update(payload or UpdateUserRequest())

    # Verification and admin status are never changed from here.
    changes = {}
    if data.name is not None:
        changes["name"] = data.name
    if data.avatar is not None:
        changes["avatar"] = data.avatar
    if data.password is not None:
        changes["password_hash"] = await hash_password(data.password)

    user = await store.update(id, UserPatch(**changes))
    if not user:
        raise NotFound("User not found", status_code=404)

    logger.info(f"User {identity.user_id} updated user {id}")
    return {"success": True, "user": sanitize_user(user)}


@router.delete("/delete/{id}")
async def delete_user(
        id: str,
        response: Response,
        identity: Identity = Depends(require_owner_or_admin),
        store: UserStore = Depends(get_user_store),
):
    if not await store.delete_by_id(id):
        raise NotFound("User not found", status_code=404)

    if identity.user_id == id:
        clear_auth_cookie(response)

    logger.info(f"User {identity.user_id} deleted user {id}")
    return {"success": True, "message": "User has been deleted"}


@router.get("/find/{id}")
async def get_user(
        id: str,
        identity: Identity = Depends(require_auth),
        store: UserStore = Depends(get_user_store),
):
    user = await store.find_by_id(id)
    if not user:
        raise NotFound("User not found", status_code=404)
    return {"success": True, "user": sanitize_user(user)}


@router.get("")
async def get_all_users(
        identity: Identity = Depends(require_admin),
        store: UserStore = Depends(get_user_store),
):
    users = await store.list_users()
    return {"success": True, "users": [sanitize_user(user) for user in users]}
