import os
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import Body, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

from catalog import filter_phones, similar_phones
from config import (
    CORS_ORIGINS,
    COOKIE_SECURE,
    LOG_LEVEL,
    MAX_AVATAR_BYTES,
    SESSION_COOKIE_NAME,
    SESSION_TTL_HOURS,
    UPLOAD_DIR,
)
from pricing import dashboard_stats
from schemas import (
    AdminUserPublic,
    AuthStatus,
    DashboardStats,
    FilterState,
    LoginRequest,
    LoginResponse,
    Message,
    PasswordChange,
    Phone,
    PhoneCreate,
    PhoneUpdate,
    ProfileUpdate,
    Session,
    SortOrder,
)
from settings import SettingValue, serialize_value
from storage import EmailInUseError, MongoStorage, Storage

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

storage: Storage = MongoStorage()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await storage.ensure_indexes()
    except PyMongoError as e:
        logger.warning("Could not ensure indexes: %s", e)
    yield


app = FastAPI(title="O&U Gadgets API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

AVATAR_DIR = os.path.join(UPLOAD_DIR, "avatars")
os.makedirs(AVATAR_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")

ALLOWED_IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}

FILTER_PARAMS = {"search", "brand", "minRam", "maxPrice", "sortBy"}


# -------------------------------
# Error handlers
# -------------------------------

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# -------------------------------
# Dependencies
# -------------------------------

def get_storage() -> Storage:
    return storage


async def current_session(request: Request, store: Storage = Depends(get_storage)) -> Optional[Session]:
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    return await store.get_session(sid)


async def require_admin(session: Optional[Session] = Depends(current_session)) -> Session:
    if session is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return session


def set_session_cookie(response: Response, session: Session) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session.sid,
        max_age=SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
        path="/",
    )


# -------------------------------
# Routes
# -------------------------------

@app.get("/")
def read_root():
    return {"message": "O&U Gadgets backend running"}


# Auth

@app.post("/api/auth/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request, response: Response, store: Storage = Depends(get_storage)):
    admin = await store.verify_admin_password(body.username, body.password)
    if admin is None:
        logger.info("Failed login attempt for %r", body.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    old_sid = request.cookies.get(SESSION_COOKIE_NAME)
    if old_sid:
        await store.delete_session(old_sid)

    session = await store.create_session(admin.id, admin.username)
    set_session_cookie(response, session)
    logger.info("Admin %r logged in", admin.username)
    return LoginResponse(user=admin.public())


@app.post("/api/auth/logout", response_model=Message)
async def logout(request: Request, response: Response, store: Storage = Depends(get_storage)):
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        await store.delete_session(sid)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return Message(message="Logged out successfully")


@app.get("/api/auth/status", response_model=AuthStatus, response_model_exclude_none=True)
async def auth_status(session: Optional[Session] = Depends(current_session)):
    if session is None:
        return AuthStatus(authenticated=False)
    return AuthStatus(authenticated=True, admin_id=session.admin_id)


# Admin profile

@app.get("/api/admin/profile", response_model=AdminUserPublic)
async def get_profile(session: Session = Depends(require_admin), store: Storage = Depends(get_storage)):
    admin = await store.get_admin_user(session.admin_id)
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin user not found")
    return admin.public()


@app.patch("/api/admin/profile", response_model=AdminUserPublic)
async def update_profile(
    body: ProfileUpdate,
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    admin = await store.get_admin_user(session.admin_id)
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin user not found")

    updates = body.model_dump(exclude_unset=True)
    new_email = updates.get("email")
    if new_email and new_email != admin.email:
        existing = await store.get_admin_user_by_email(new_email)
        if existing is not None and existing.id != admin.id:
            raise HTTPException(status_code=400, detail="Email already in use")

    # the unique index catches races the lookup above misses
    try:
        updated = await store.update_admin_user(admin.id, updates)
    except EmailInUseError:
        raise HTTPException(status_code=400, detail="Email already in use")
    if updated is None:
        raise HTTPException(status_code=404, detail="Admin user not found")
    return updated.public()


@app.post("/api/admin/change-password", response_model=Message)
async def change_password(
    body: PasswordChange,
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    admin = await store.get_admin_user(session.admin_id)
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin user not found")

    verified = await store.verify_admin_password(admin.username, body.current_password)
    if verified is None:
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if not await store.update_admin_password(verified.id, body.new_password):
        raise HTTPException(status_code=404, detail="Admin user not found")
    logger.info("Admin %r changed password", admin.username)
    return Message(message="Password updated successfully")


@app.post("/api/admin/avatar", response_model=AdminUserPublic)
async def upload_avatar(
    avatar: UploadFile = File(...),
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    ext = os.path.splitext(avatar.filename or "")[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS or avatar.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    data = await avatar.read(MAX_AVATAR_BYTES + 1)
    if len(data) > MAX_AVATAR_BYTES:
        raise HTTPException(status_code=400, detail="File too large")

    admin = await store.get_admin_user(session.admin_id)
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin user not found")

    filename = f"avatar-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"
    with open(os.path.join(AVATAR_DIR, filename), "wb") as fh:
        fh.write(data)

    updated = await store.update_admin_user(admin.id, {"avatar": f"/uploads/avatars/{filename}"})
    if updated is None:
        raise HTTPException(status_code=404, detail="Admin user not found")
    logger.info("Admin %r uploaded avatar %s", admin.username, filename)
    return updated.public()


@app.get("/api/admin/stats", response_model=DashboardStats)
async def admin_stats(session: Session = Depends(require_admin), store: Storage = Depends(get_storage)):
    return dashboard_stats(await store.list_phones())


# Phones

@app.get("/api/phones", response_model=List[Phone])
async def list_phones(
    request: Request,
    search: str = "",
    brand: str = "all",
    min_ram: int = Query(0, alias="minRam"),
    max_price: Optional[int] = Query(None, alias="maxPrice"),
    sort_by: SortOrder = Query("newest", alias="sortBy"),
    store: Storage = Depends(get_storage),
):
    phones = await store.list_phones()
    if not FILTER_PARAMS.intersection(request.query_params.keys()):
        return phones
    filters = FilterState(search=search, brand=brand, min_ram=min_ram, max_price=max_price, sort_by=sort_by)
    return filter_phones(phones, filters)


@app.get("/api/phones/{phone_id}", response_model=Phone)
async def get_phone(phone_id: str, store: Storage = Depends(get_storage)):
    phone = await store.get_phone(phone_id)
    if phone is None:
        raise HTTPException(status_code=404, detail="Phone not found")
    return phone


@app.get("/api/phones/{phone_id}/similar", response_model=List[Phone])
async def get_similar_phones(phone_id: str, store: Storage = Depends(get_storage)):
    phone = await store.get_phone(phone_id)
    if phone is None:
        raise HTTPException(status_code=404, detail="Phone not found")
    return similar_phones(await store.list_phones(), phone)


@app.post("/api/phones", response_model=Phone, status_code=201)
async def create_phone(
    body: PhoneCreate,
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    phone = await store.create_phone(body)
    logger.info("Phone %s (%s) created by %r", phone.id, phone.name, session.username)
    return phone


@app.put("/api/phones/{phone_id}", response_model=Phone)
async def update_phone(
    phone_id: str,
    body: PhoneUpdate,
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    phone = await store.update_phone(phone_id, body.model_dump(exclude_unset=True))
    if phone is None:
        raise HTTPException(status_code=404, detail="Phone not found")
    logger.info("Phone %s updated by %r", phone_id, session.username)
    return phone


@app.delete("/api/phones/{phone_id}", response_model=Message)
async def delete_phone(
    phone_id: str,
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    if not await store.delete_phone(phone_id):
        raise HTTPException(status_code=404, detail="Phone not found")
    logger.info("Phone %s deleted by %r", phone_id, session.username)
    return Message(message="Phone deleted successfully")


# Settings

async def settings_map(store: Storage) -> Dict[str, str]:
    return {s.key: s.value for s in await store.list_settings()}


@app.get("/api/settings", response_model=Dict[str, str])
async def get_settings(store: Storage = Depends(get_storage)):
    return await settings_map(store)


@app.put("/api/settings", response_model=Dict[str, str])
async def update_settings(
    updates: Dict[str, SettingValue] = Body(...),
    session: Session = Depends(require_admin),
    store: Storage = Depends(get_storage),
):
    for key, value in updates.items():
        await store.upsert_setting(key, serialize_value(value))
    logger.info("Settings %s updated by %r", sorted(updates), session.username)
    return await settings_map(store)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
