from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from models.database import MongoUserStore
from models.user import User, UserPatch
from utils.errors import Conflict

NOW = datetime(2025, 5, 3, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def collection():
    return MagicMock(
        find_one=AsyncMock(return_value=None),
        insert_one=AsyncMock(),
        find_one_and_update=AsyncMock(return_value=None),
        delete_one=AsyncMock(),
        create_index=AsyncMock(),
    )


@pytest.fixture
def mongo_store(collection):
    client = MagicMock()
    client.__getitem__.return_value.__getitem__.return_value = collection
    return MongoUserStore(client=client)


def user_document(**fields):
    doc = {
        "_id": "user-1",
        "name": "Ada Lovelace",
        "email": "ada@example.org",
        "passwordHash": "$2b$10$hash",
        "isVerified": False,
        "isAdmin": False,
        "lastLoginAt": NOW,
        "createdAt": NOW,
        "updatedAt": NOW,
    }
    doc.update(fields)
    return doc


@pytest.mark.asyncio
async def test_insert_folds_email_and_writes_camel_case(mongo_store, collection):
    user = await mongo_store.insert(User(name="Ada Lovelace", email="Ada@Example.org", password_hash="h"))

    doc = collection.insert_one.call_args.args[0]
    assert doc["_id"] == user.id
    assert doc["email"] == "ada@example.org"
    assert doc["passwordHash"] == "h"
    assert doc["isVerified"] is False
    assert "verificationToken" not in doc
    assert "password_hash" not in doc


@pytest.mark.asyncio
async def test_insert_duplicate_is_conflict(mongo_store, collection):
    collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")

    with pytest.raises(Conflict):
        await mongo_store.insert(User(name="Ada Lovelace", email="ada@example.org"))


@pytest.mark.asyncio
async def test_find_by_email_folds_case(mongo_store, collection):
    collection.find_one.return_value = user_document()

    user = await mongo_store.find_by_email("ADA@example.org")

    collection.find_one.assert_awaited_once_with({"email": "ada@example.org"})
    assert user.id == "user-1"
    assert user.password_hash == "$2b$10$hash"


@pytest.mark.asyncio
async def test_find_by_verification_token_checks_expiry(mongo_store, collection):
    await mongo_store.find_by_verification_token("hashed", NOW)

    collection.find_one.assert_awaited_once_with({
        "verificationToken": "hashed",
        "verificationTokenExpiresAt": {"$gt": NOW},
    })


@pytest.mark.asyncio
async def test_update_sets_and_unsets(mongo_store, collection):
    collection.find_one_and_update.return_value = user_document(isVerified=True)

    user = await mongo_store.update("user-1", UserPatch(
        is_verified=True,
        verification_token=None,
        verification_token_expires_at=None,
    ))

    query, update = collection.find_one_and_update.call_args.args
    assert query == {"_id": "user-1"}
    assert update["$set"]["isVerified"] is True
    assert "updatedAt" in update["$set"]
    assert update["$unset"] == {"verificationToken": "", "verificationTokenExpiresAt": ""}
    assert collection.find_one_and_update.call_args.kwargs["return_document"] == ReturnDocument.AFTER
    assert user.is_verified is True


@pytest.mark.asyncio
async def test_update_leaves_unset_fields_alone(mongo_store, collection):
    await mongo_store.update("user-1", UserPatch(name="Ada King"))

    _, update = collection.find_one_and_update.call_args.args
    assert set(update["$set"]) == {"name", "updatedAt"}
    assert "$unset" not in update


@pytest.mark.asyncio
async def test_update_missing_user_returns_none(mongo_store):
    assert await mongo_store.update("missing", UserPatch(name="Nobody")) is None


@pytest.mark.asyncio
async def test_delete_reports_whether_a_record_was_removed(mongo_store, collection):
    collection.delete_one.return_value = MagicMock(deleted_count=1)
    assert await mongo_store.delete_by_id("user-1") is True

    collection.delete_one.return_value = MagicMock(deleted_count=0)
    assert await mongo_store.delete_by_id("user-1") is False


def test_patch_rejects_admin_flag():
    with pytest.raises(ValueError):
        UserPatch(is_admin=True)
