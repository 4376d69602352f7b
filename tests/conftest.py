import asyncio
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="ougadgets-uploads-"))
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from config import SESSION_TTL_HOURS
from main import app, get_storage
from schemas import AdminUser, AdminUserCreate, Phone, PhoneCreate, Session, Setting, User
from storage import EmailInUseError, Storage, hash_password, new_session_id, now_utc

ADMIN_PASSWORD = "correct-horse-battery"
OTHER_PASSWORD = "other-admin-password"


class MemoryStorage(Storage):
    """Dict-backed Storage used in place of MongoDB."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.admins: Dict[str, Dict[str, Any]] = {}
        self.phones: Dict[str, Dict[str, Any]] = {}
        self.settings: Dict[str, str] = {}
        self.sessions: Dict[str, Session] = {}

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    async def get_user(self, user_id: str) -> Optional[User]:
        doc = self.users.get(user_id)
        return User(**doc) if doc else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        for doc in self.users.values():
            if doc["username"] == username:
                return User(**doc)
        return None

    async def create_user(self, username: str, password: str) -> User:
        doc = {"id": self._new_id(), "username": username, "password": hash_password(password)}
        self.users[doc["id"]] = doc
        return User(**doc)

    async def get_admin_user(self, admin_id: str) -> Optional[AdminUser]:
        doc = self.admins.get(admin_id)
        return AdminUser(**doc) if doc else None

    async def _admin_where(self, field: str, value: str) -> Optional[AdminUser]:
        for doc in self.admins.values():
            if doc[field] == value:
                return AdminUser(**doc)
        return None

    async def get_admin_user_by_username(self, username: str) -> Optional[AdminUser]:
        return await self._admin_where("username", username)

    async def get_admin_user_by_email(self, email: str) -> Optional[AdminUser]:
        return await self._admin_where("email", email)

    async def create_admin_user(self, data: AdminUserCreate) -> AdminUser:
        if await self.get_admin_user_by_email(data.email):
            raise EmailInUseError(data.email)
        now = now_utc()
        doc = {
            **data.model_dump(),
            "id": self._new_id(),
            "password": hash_password(data.password),
            "joined_date": now,
            "last_active": now,
        }
        self.admins[doc["id"]] = doc
        return AdminUser(**doc)

    async def update_admin_user(self, admin_id: str, updates: Dict[str, Any]) -> Optional[AdminUser]:
        doc = self.admins.get(admin_id)
        if doc is None:
            return None
        email = updates.get("email")
        if email and any(d["email"] == email and i != admin_id for i, d in self.admins.items()):
            raise EmailInUseError(email)
        doc.update(updates)
        doc["last_active"] = now_utc()
        return AdminUser(**doc)

    async def update_admin_password(self, admin_id: str, new_password: str) -> bool:
        doc = self.admins.get(admin_id)
        if doc is None:
            return False
        doc["password"] = hash_password(new_password)
        doc["last_active"] = now_utc()
        return True

    async def list_phones(self) -> List[Phone]:
        return [Phone(**doc) for doc in self.phones.values()]

    async def get_phone(self, phone_id: str) -> Optional[Phone]:
        doc = self.phones.get(phone_id)
        return Phone(**doc) if doc else None

    async def create_phone(self, data: PhoneCreate) -> Phone:
        doc = {**data.model_dump(), "id": self._new_id(), "added_date": now_utc()}
        self.phones[doc["id"]] = doc
        return Phone(**doc)

    async def update_phone(self, phone_id: str, updates: Dict[str, Any]) -> Optional[Phone]:
        doc = self.phones.get(phone_id)
        if doc is None:
            return None
        doc.update(updates)
        return Phone(**doc)

    async def delete_phone(self, phone_id: str) -> bool:
        return self.phones.pop(phone_id, None) is not None

    async def list_settings(self) -> List[Setting]:
        return [Setting(key=k, value=v) for k, v in self.settings.items()]

    async def get_setting(self, key: str) -> Optional[Setting]:
        if key not in self.settings:
            return None
        return Setting(key=key, value=self.settings[key])

    async def upsert_setting(self, key: str, value: str) -> Setting:
        self.settings[key] = value
        return Setting(key=key, value=value)

    async def create_session(self, admin_id: str, username: str) -> Session:
        now = now_utc()
        session = Session(
            sid=new_session_id(),
            admin_id=admin_id,
            username=username,
            created_at=now,
            expires_at=now + timedelta(hours=SESSION_TTL_HOURS),
        )
        self.sessions[session.sid] = session
        return session

    async def get_session(self, sid: str) -> Optional[Session]:
        session = self.sessions.get(sid)
        if session is None:
            return None
        if session.expires_at <= now_utc():
            del self.sessions[sid]
            return None
        return session

    async def delete_session(self, sid: str) -> None:
        self.sessions.pop(sid, None)


def run(coro):
    return asyncio.run(coro)


def make_phone(**overrides) -> Dict[str, Any]:
    """A valid phone payload in wire (camelCase) form."""
    data = {
        "name": "Galaxy S23",
        "brand": "Samsung",
        "ram": 8,
        "rom": 256,
        "color": "Black",
        "battery": 3900,
        "camera": 50,
        "frontCamera": 12,
        "marketPrice": 650000,
        "jumiaPrice": 620000,
        "ouPrice": 580000,
        "description": "Flagship in great shape",
        "images": ["https://example.com/s23-front.jpg", "https://example.com/s23-back.jpg"],
        "condition": "Used - Good",
    }
    data.update(overrides)
    return data


def phone_model(id: str, added_day: int = 1, **overrides) -> Phone:
    data = make_phone(**overrides)
    data.update({"id": id, "addedDate": datetime(2024, 1, added_day, tzinfo=timezone.utc)})
    return Phone.model_validate(data)


@pytest.fixture
def store():
    mem = MemoryStorage()
    run(mem.create_admin_user(AdminUserCreate(
        username="oanduadmin",
        email="admin@ougadgets.com",
        password=ADMIN_PASSWORD,
        name="Admin User",
        role="admin",
        phone="+234 800 000 0000",
    )))
    run(mem.create_admin_user(AdminUserCreate(
        username="manager",
        email="manager@ougadgets.com",
        password=OTHER_PASSWORD,
        name="Store Manager",
        role="manager",
    )))
    return mem


@pytest.fixture
def client(store):
    app.dependency_overrides[get_storage] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    res = client.post("/api/auth/login", json={"username": "oanduadmin", "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    return client
