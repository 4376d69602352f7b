import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import bcrypt
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import BCRYPT_ROUNDS, SESSION_TTL_HOURS
from database import get_db, serialize_doc, to_object_id
from schemas import (
    AdminUser,
    AdminUserCreate,
    Phone,
    PhoneCreate,
    Session,
    Setting,
    User,
)


class EmailInUseError(Exception):
    """Raised when an admin profile write collides with another user's email."""


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # malformed stored hash
        return False


# checked when the username is unknown so both login failures cost one bcrypt round
_DUMMY_HASH = hash_password(secrets.token_urlsafe(16))


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class Storage(ABC):
    """One coroutine per entity per operation. No cross-entity transactions."""

    # legacy users
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, username: str, password: str) -> User: ...

    # admin users
    @abstractmethod
    async def get_admin_user(self, admin_id: str) -> Optional[AdminUser]: ...

    @abstractmethod
    async def get_admin_user_by_username(self, username: str) -> Optional[AdminUser]: ...

    @abstractmethod
    async def get_admin_user_by_email(self, email: str) -> Optional[AdminUser]: ...

    @abstractmethod
    async def create_admin_user(self, data: AdminUserCreate) -> AdminUser: ...

    @abstractmethod
    async def update_admin_user(self, admin_id: str, updates: Dict[str, Any]) -> Optional[AdminUser]:
        """Apply a partial update and refresh last_active. Raises EmailInUseError."""

    @abstractmethod
    async def update_admin_password(self, admin_id: str, new_password: str) -> bool: ...

    async def verify_admin_password(self, username: str, password: str) -> Optional[AdminUser]:
        admin = await self.get_admin_user_by_username(username)
        if admin is None:
            verify_password(password, _DUMMY_HASH)
            return None
        return admin if verify_password(password, admin.password) else None

    # phones
    @abstractmethod
    async def list_phones(self) -> List[Phone]: ...

    @abstractmethod
    async def get_phone(self, phone_id: str) -> Optional[Phone]: ...

    @abstractmethod
    async def create_phone(self, data: PhoneCreate) -> Phone: ...

    @abstractmethod
    async def update_phone(self, phone_id: str, updates: Dict[str, Any]) -> Optional[Phone]: ...

    @abstractmethod
    async def delete_phone(self, phone_id: str) -> bool: ...

    # settings
    @abstractmethod
    async def list_settings(self) -> List[Setting]: ...

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[Setting]: ...

    @abstractmethod
    async def upsert_setting(self, key: str, value: str) -> Setting: ...

    # sessions
    @abstractmethod
    async def create_session(self, admin_id: str, username: str) -> Session: ...

    @abstractmethod
    async def get_session(self, sid: str) -> Optional[Session]:
        """Return the live session for sid; expired sessions are removed."""

    @abstractmethod
    async def delete_session(self, sid: str) -> None: ...

    async def ensure_indexes(self) -> None:
        pass


class MongoStorage(Storage):
    async def _col(self, name: str):
        db = await get_db()
        return db[name]

    async def ensure_indexes(self) -> None:
        db = await get_db()
        await db["adminuser"].create_index([("username", ASCENDING)], unique=True)
        await db["adminuser"].create_index([("email", ASCENDING)], unique=True)
        await db["user"].create_index([("username", ASCENDING)], unique=True)
        await db["setting"].create_index([("key", ASCENDING)], unique=True)
        await db["session"].create_index([("sid", ASCENDING)], unique=True)
        # Mongo's TTL monitor drops expired sessions on its own schedule
        await db["session"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    # -------------------------------
    # Legacy users
    # -------------------------------

    async def get_user(self, user_id: str) -> Optional[User]:
        _id = to_object_id(user_id)
        if _id is None:
            return None
        col = await self._col("user")
        doc = await col.find_one({"_id": _id})
        return User(**serialize_doc(doc)) if doc else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        col = await self._col("user")
        doc = await col.find_one({"username": username})
        return User(**serialize_doc(doc)) if doc else None

    async def create_user(self, username: str, password: str) -> User:
        col = await self._col("user")
        doc = {"username": username, "password": hash_password(password)}
        res = await col.insert_one(doc)
        return User(id=str(res.inserted_id), username=username, password=doc["password"])

    # -------------------------------
    # Admin users
    # -------------------------------

    async def _find_admin(self, filt: Dict[str, Any]) -> Optional[AdminUser]:
        col = await self._col("adminuser")
        doc = await col.find_one(filt)
        return AdminUser(**serialize_doc(doc)) if doc else None

    async def get_admin_user(self, admin_id: str) -> Optional[AdminUser]:
        _id = to_object_id(admin_id)
        if _id is None:
            return None
        return await self._find_admin({"_id": _id})

    async def get_admin_user_by_username(self, username: str) -> Optional[AdminUser]:
        return await self._find_admin({"username": username})

    async def get_admin_user_by_email(self, email: str) -> Optional[AdminUser]:
        return await self._find_admin({"email": email})

    async def create_admin_user(self, data: AdminUserCreate) -> AdminUser:
        now = now_utc()
        doc = data.model_dump()
        doc.update({
            "password": hash_password(data.password),
            "joined_date": now,
            "last_active": now,
        })
        col = await self._col("adminuser")
        res = await col.insert_one(doc)
        doc["_id"] = res.inserted_id
        return AdminUser(**serialize_doc(doc))

    async def update_admin_user(self, admin_id: str, updates: Dict[str, Any]) -> Optional[AdminUser]:
        _id = to_object_id(admin_id)
        if _id is None:
            return None
        col = await self._col("adminuser")
        try:
            doc = await col.find_one_and_update(
                {"_id": _id},
                {"$set": {**updates, "last_active": now_utc()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise EmailInUseError(str(e)) from e
        return AdminUser(**serialize_doc(doc)) if doc else None

    async def update_admin_password(self, admin_id: str, new_password: str) -> bool:
        _id = to_object_id(admin_id)
        if _id is None:
            return False
        col = await self._col("adminuser")
        res = await col.update_one(
            {"_id": _id},
            {"$set": {"password": hash_password(new_password), "last_active": now_utc()}},
        )
        return res.matched_count == 1

    # -------------------------------
    # Phones
    # -------------------------------

    async def list_phones(self) -> List[Phone]:
        col = await self._col("phone")
        return [Phone(**serialize_doc(d)) async for d in col.find({})]

    async def get_phone(self, phone_id: str) -> Optional[Phone]:
        _id = to_object_id(phone_id)
        if _id is None:
            return None
        col = await self._col("phone")
        doc = await col.find_one({"_id": _id})
        return Phone(**serialize_doc(doc)) if doc else None

    async def create_phone(self, data: PhoneCreate) -> Phone:
        doc = {**data.model_dump(), "added_date": now_utc()}
        col = await self._col("phone")
        res = await col.insert_one(doc)
        doc["_id"] = res.inserted_id
        return Phone(**serialize_doc(doc))

    async def update_phone(self, phone_id: str, updates: Dict[str, Any]) -> Optional[Phone]:
        _id = to_object_id(phone_id)
        if _id is None:
            return None
        col = await self._col("phone")
        if not updates:
            doc = await col.find_one({"_id": _id})
        else:
            doc = await col.find_one_and_update(
                {"_id": _id}, {"$set": updates}, return_document=ReturnDocument.AFTER
            )
        return Phone(**serialize_doc(doc)) if doc else None

    async def delete_phone(self, phone_id: str) -> bool:
        _id = to_object_id(phone_id)
        if _id is None:
            return False
        col = await self._col("phone")
        res = await col.delete_one({"_id": _id})
        return res.deleted_count == 1

    # -------------------------------
    # Settings
    # -------------------------------

    async def list_settings(self) -> List[Setting]:
        col = await self._col("setting")
        return [Setting(key=d["key"], value=d["value"]) async for d in col.find({})]

    async def get_setting(self, key: str) -> Optional[Setting]:
        col = await self._col("setting")
        doc = await col.find_one({"key": key})
        return Setting(key=doc["key"], value=doc["value"]) if doc else None

    async def upsert_setting(self, key: str, value: str) -> Setting:
        col = await self._col("setting")
        await col.update_one({"key": key}, {"$set": {"value": value}}, upsert=True)
        return Setting(key=key, value=value)

    # -------------------------------
    # Sessions
    # -------------------------------

    async def create_session(self, admin_id: str, username: str) -> Session:
        now = now_utc()
        session = Session(
            sid=new_session_id(),
            admin_id=admin_id,
            username=username,
            created_at=now,
            expires_at=now + timedelta(hours=SESSION_TTL_HOURS),
        )
        col = await self._col("session")
        await col.insert_one(session.model_dump())
        return session

    async def get_session(self, sid: str) -> Optional[Session]:
        col = await self._col("session")
        doc = await col.find_one({"sid": sid})
        if not doc:
            return None
        session = Session(**{k: v for k, v in doc.items() if k != "_id"})
        if session.expires_at <= now_utc():
            await col.delete_one({"sid": sid})
            return None
        return session

    async def delete_session(self, sid: str) -> None:
        col = await self._col("session")
        await col.delete_one({"sid": sid})
