import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import MONGO_URI, MONGO_DB_NAME
from models.user import User, UserPatch
from utils import timeutils
from utils.errors import Conflict

logger = logging.getLogger(__name__)


def fold_email(email: Optional[str]) -> Optional[str]:
    return email.strip().lower() if email else email


class UserStore(ABC):
    """
    Persistence contract consumed by the authentication flows.

    ``find_by_verification_token`` and ``find_by_reset_token`` only return
    records whose matching expiry lies after ``now``. ``insert`` raises
    Conflict when the email is already taken.
    """

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def find_by_verification_token(self, token: str, now: datetime) -> Optional[User]: ...

    @abstractmethod
    async def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]: ...

    @abstractmethod
    async def insert(self, user: User) -> User: ...

    @abstractmethod
    async def update(self, user_id: str, patch: UserPatch) -> Optional[User]: ...

    @abstractmethod
    async def delete_by_id(self, user_id: str) -> bool: ...

    @abstractmethod
    async def list_users(self) -> List[User]: ...


class MongoUserStore(UserStore):
    def __init__(self, uri: str = MONGO_URI, db_name: str = MONGO_DB_NAME, client: AsyncMongoClient = None):
        self.client = client or AsyncMongoClient(uri, tz_aware=True)
        self.collection = self.client[db_name]["users"]

    async def ensure_indexes(self):
        await self.collection.create_index("email", unique=True, sparse=True)
        await self.collection.create_index("username", unique=True, sparse=True)
        await self.collection.create_index("verificationToken", sparse=True)
        await self.collection.create_index("resetPasswordToken", sparse=True)
        logger.info("User collection indexes ensured")

    async def close(self):
        await self.client.close()

    async def _find_one(self, query: dict) -> Optional[User]:
        doc = await self.collection.find_one(query)
        return User.from_document(doc) if doc else None

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return await self._find_one({"_id": user_id})

    async def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return await self._find_one({"email": fold_email(email)})

    async def find_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        return await self._find_one({"username": username})

    async def find_by_verification_token(self, token: str, now: datetime) -> Optional[User]:
        return await self._find_one({
            "verificationToken": token,
            "verificationTokenExpiresAt": {"$gt": now},
        })

    async def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        return await self._find_one({
            "resetPasswordToken": token,
            "resetPasswordExpiresAt": {"$gt": now},
        })

    async def insert(self, user: User) -> User:
        now = timeutils.utcnow()
        user = user.model_copy(update={
            "email": fold_email(user.email),
            "created_at": now,
            "updated_at": now,
        })
        try:
            await self.collection.insert_one(user.to_document())
        except DuplicateKeyError:
            raise Conflict("User already exists")
        return user

    async def update(self, user_id: str, patch: UserPatch) -> Optional[User]:
        changes = patch.changes()
        if "email" in changes:
            changes["email"] = fold_email(changes["email"])

        # camelCase document keys, matching User's aliases
        fields = {User.model_fields[name].alias: value for name, value in changes.items()}
        to_set = {key: value for key, value in fields.items() if value is not None}
        to_unset = {key: "" for key, value in fields.items() if value is None}
        to_set["updatedAt"] = timeutils.utcnow()

        update = {"$set": to_set}
        if to_unset:
            update["$unset"] = to_unset

        try:
            doc = await self.collection.find_one_and_update(
                {"_id": user_id},
                update,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise Conflict("User already exists")
        return User.from_document(doc) if doc else None

    async def delete_by_id(self, user_id: str) -> bool:
        result = await self.collection.delete_one({"_id": user_id})
        return result.deleted_count > 0

    async def list_users(self) -> List[User]:
        cursor = self.collection.find({})
        return [User.from_document(doc) async for doc in cursor]
