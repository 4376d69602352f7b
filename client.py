"""
Storefront / back-office client.

Holds the state the web front-end keeps in the browser: the compare list
and the cached admin login, both persisted through a LocalStore, plus a
small query cache over the REST API. HTTP goes through a requests.Session
so the session cookie set by /api/auth/login rides along automatically.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import requests
from pydantic import ValidationError

from catalog import filter_phones
from csv_io import export_phones, parse_csv
from pricing import whatsapp_order_url
from schemas import AdminUserPublic, DashboardStats, FilterState, Phone, PhoneCreate, PhoneUpdate
from settings import SettingValue, with_defaults

logger = logging.getLogger(__name__)

MAX_COMPARE = 4


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


# -------------------------------
# Persistence
# -------------------------------

class LocalStore:
    """A JSON file of named values, written through on every save."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.warning("Ignoring unreadable local store %s", self.path)
            return {}
        return data

    def load(self, key: str) -> Any:
        return self._read().get(key)

    def save(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")


class CompareList:
    """Up to four phone snapshots, unique by id, oldest first.

    Snapshots are never checked against the server, so an entry may describe
    a phone that has since been edited or deleted.
    """

    key = "compareList"

    def __init__(self, store: Optional[LocalStore] = None):
        self._store = store
        self._items: List[Phone] = []
        for raw in (store.load(self.key) if store else None) or []:
            try:
                self._append(Phone.model_validate(raw))
            except ValidationError:
                logger.warning("Dropping unreadable compare entry %r", raw)

    def _append(self, phone: Phone) -> bool:
        if phone.id in self or len(self._items) >= MAX_COMPARE:
            return False
        self._items.append(phone)
        return True

    def _persist(self) -> None:
        if self._store is not None:
            self._store.save(self.key, [p.model_dump(mode="json", by_alias=True) for p in self._items])

    def add(self, phone: Phone) -> bool:
        added = self._append(phone)
        if added:
            self._persist()
        return added

    def remove(self, phone_id: str) -> None:
        kept = [p for p in self._items if p.id != phone_id]
        if len(kept) != len(self._items):
            self._items = kept
            self._persist()

    def clear(self) -> None:
        self._items = []
        self._persist()

    @property
    def items(self) -> List[Phone]:
        return list(self._items)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= MAX_COMPARE

    def __contains__(self, phone_id: object) -> bool:
        return any(p.id == phone_id for p in self._items)

    def __iter__(self) -> Iterator[Phone]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class AuthState:
    key = "auth"

    def __init__(self, store: Optional[LocalStore] = None):
        self._store = store
        self.is_authenticated = False
        self.admin_user: Optional[AdminUserPublic] = None
        raw = store.load(self.key) if store else None
        if raw:
            try:
                user = raw.get("adminUser")
                self.admin_user = AdminUserPublic.model_validate(user) if user else None
                self.is_authenticated = bool(raw.get("isAuthenticated"))
            except ValidationError:
                logger.warning("Dropping unreadable cached admin profile")

    def _persist(self) -> None:
        if self._store is None:
            return
        user = self.admin_user.model_dump(mode="json", by_alias=True) if self.admin_user else None
        self._store.save(self.key, {"isAuthenticated": self.is_authenticated, "adminUser": user})

    def set_auth(self, is_authenticated: bool, admin_user: Optional[AdminUserPublic]) -> None:
        self.is_authenticated = is_authenticated
        self.admin_user = admin_user
        self._persist()

    def logout(self) -> None:
        self.set_auth(False, None)

    def update_admin_profile(self, **updates: Any) -> None:
        if self.admin_user is None:
            return
        self.admin_user = self.admin_user.model_copy(update=updates)
        self._persist()


class QueryCache:
    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def invalidate(self, prefix: str) -> None:
        for key in list(self._data):
            if key == prefix or key.startswith(prefix + "/") or key.startswith(prefix + "?"):
                del self._data[key]

    def clear(self) -> None:
        self._data.clear()


# -------------------------------
# API client
# -------------------------------

class StorefrontClient:
    def __init__(
        self,
        base_url: str = "",
        session: Optional[requests.Session] = None,
        local_store: Optional[LocalStore] = None,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = session if session is not None else requests.Session()
        self.timeout = timeout
        self.cache = QueryCache()
        self.compare = CompareList(local_store)
        self.auth = AuthState(local_store)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = self.http.request(method, self.base_url + path, timeout=self.timeout, **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("detail") if isinstance(body, dict) else body
            except ValueError:
                detail = resp.text
            raise ApiError(resp.status_code, detail)
        return resp.json() if resp.content else None

    def _query(self, path: str) -> Any:
        if path not in self.cache:
            self.cache.set(path, self._request("GET", path))
        return self.cache.get(path)

    # Catalog

    def phones(self, filters: Optional[FilterState] = None) -> List[Phone]:
        phones = [Phone.model_validate(p) for p in self._query("/api/phones")]
        return filter_phones(phones, filters) if filters is not None else phones

    def phone(self, phone_id: str) -> Phone:
        return Phone.model_validate(self._query(f"/api/phones/{phone_id}"))

    def similar(self, phone_id: str) -> List[Phone]:
        return [Phone.model_validate(p) for p in self._query(f"/api/phones/{phone_id}/similar")]

    def order_link(self, phone: Phone) -> str:
        return whatsapp_order_url(phone, self.store_settings().get("contactPhone"))

    # Auth

    def login(self, username: str, password: str) -> AdminUserPublic:
        data = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        user = AdminUserPublic.model_validate(data["user"])
        self.auth.set_auth(True, user)
        self.cache.invalidate("/api/admin")
        return user

    def logout(self) -> None:
        try:
            self._request("POST", "/api/auth/logout")
        except (requests.RequestException, ApiError) as e:
            logger.warning("Logout request failed, clearing local session anyway: %s", e)
        finally:
            self.auth.logout()
            self.cache.invalidate("/api/admin")

    def validate_session(self) -> bool:
        """Re-check a remembered login with the server; any doubt logs out."""
        if not self.auth.is_authenticated:
            return False
        try:
            status = self._request("GET", "/api/auth/status")
        except (requests.RequestException, ApiError, ValueError) as e:
            logger.info("Session check failed: %s", e)
            self.auth.logout()
            return False
        if not isinstance(status, dict) or not status.get("authenticated"):
            self.auth.logout()
            return False
        return True

    # Admin profile

    def profile(self) -> AdminUserPublic:
        return AdminUserPublic.model_validate(self._query("/api/admin/profile"))

    def _profile_changed(self, data: Dict[str, Any]) -> AdminUserPublic:
        user = AdminUserPublic.model_validate(data)
        self.cache.invalidate("/api/admin/profile")
        self.auth.update_admin_profile(**user.model_dump())
        return user

    def update_profile(self, **fields: Optional[str]) -> AdminUserPublic:
        data = self._request("PATCH", "/api/admin/profile", json=fields)
        return self._profile_changed(data)

    def change_password(self, current_password: str, new_password: str, confirm_password: str) -> str:
        if new_password != confirm_password:
            raise ValueError("New password and confirmation do not match")
        data = self._request(
            "POST",
            "/api/admin/change-password",
            json={
                "currentPassword": current_password,
                "newPassword": new_password,
                "confirmPassword": confirm_password,
            },
        )
        self.cache.invalidate("/api/admin/profile")
        return data["message"]

    def upload_avatar(self, filename: str, content: bytes, content_type: str) -> AdminUserPublic:
        data = self._request("POST", "/api/admin/avatar", files={"avatar": (filename, content, content_type)})
        return self._profile_changed(data)

    def stats(self) -> DashboardStats:
        return DashboardStats.model_validate(self._query("/api/admin/stats"))

    # Phone management

    def create_phone(self, phone: PhoneCreate) -> Phone:
        data = self._request("POST", "/api/phones", json=phone.model_dump(mode="json", by_alias=True))
        self.cache.invalidate("/api/phones")
        self.cache.invalidate("/api/admin/stats")
        return Phone.model_validate(data)

    def update_phone(self, phone_id: str, updates: PhoneUpdate) -> Phone:
        payload = updates.model_dump(mode="json", by_alias=True, exclude_unset=True)
        data = self._request("PUT", f"/api/phones/{phone_id}", json=payload)
        self.cache.invalidate("/api/phones")
        self.cache.invalidate("/api/admin/stats")
        return Phone.model_validate(data)

    def delete_phone(self, phone_id: str) -> None:
        self._request("DELETE", f"/api/phones/{phone_id}")
        self.cache.invalidate("/api/phones")
        self.cache.invalidate("/api/admin/stats")

    def import_csv(self, text: str) -> List[Phone]:
        # parse everything first so a bad row creates nothing
        rows = parse_csv(text)
        fields = set(PhoneCreate.model_fields)
        return [self.create_phone(PhoneCreate(**row.model_dump(include=fields))) for row in rows]

    def export_csv(self) -> str:
        return export_phones(self.phones())

    # Settings

    def settings(self) -> Dict[str, str]:
        return dict(self._query("/api/settings"))

    def store_settings(self) -> Dict[str, str]:
        return with_defaults(self.settings())

    def update_settings(self, updates: Dict[str, SettingValue]) -> Dict[str, str]:
        data = self._request("PUT", "/api/settings", json=updates)
        self.cache.invalidate("/api/settings")
        return data
