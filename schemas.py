"""
Database Schemas for O&U Gadgets

Define MongoDB collection schemas here using Pydantic models.
Each Pydantic model represents a collection in your database.
Collection name is lowercase of class name (Phone -> "phone",
Adminuser documents live in "adminuser").

Fields are snake_case in Python and in MongoDB; the JSON API speaks
camelCase through the alias generator on CamelModel.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

AdminRole = Literal["admin", "manager", "staff"]
SortOrder = Literal["newest", "price_asc", "price_desc"]

DEFAULT_MAX_PRICE = 1_000_000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def reject_nulls(model: BaseModel, nullable: set) -> None:
    for name in model.model_fields_set:
        if name not in nullable and getattr(model, name) is None:
            raise ValueError(f"{to_camel(name)} cannot be null")


# -------------------------------
# Phones
# -------------------------------

class PhoneBase(CamelModel):
    name: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    ram: int = Field(..., ge=0, description="GB")
    rom: int = Field(..., ge=0, description="GB")
    color: Optional[str] = None
    battery: int = Field(..., ge=0, description="mAh")
    camera: int = Field(..., ge=0, description="MP")
    front_camera: int = Field(..., ge=0, description="MP")
    market_price: int = Field(..., ge=0)
    jumia_price: int = Field(..., ge=0)
    ou_price: int = Field(..., ge=0, description="O&U offer price")
    description: str
    images: List[str] = Field(..., min_length=1, description="First image is the primary one")
    condition: str
    os: Optional[str] = None
    sim: Optional[str] = None
    inspection_video: Optional[str] = None


class PhoneCreate(PhoneBase):
    pass


class Phone(PhoneBase):
    id: str
    added_date: datetime


PHONE_NULLABLE_FIELDS = {"color", "os", "sim", "inspection_video"}


class PhoneUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = Field(None, min_length=1)
    ram: Optional[int] = Field(None, ge=0)
    rom: Optional[int] = Field(None, ge=0)
    color: Optional[str] = None
    battery: Optional[int] = Field(None, ge=0)
    camera: Optional[int] = Field(None, ge=0)
    front_camera: Optional[int] = Field(None, ge=0)
    market_price: Optional[int] = Field(None, ge=0)
    jumia_price: Optional[int] = Field(None, ge=0)
    ou_price: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    images: Optional[List[str]] = Field(None, min_length=1)
    condition: Optional[str] = None
    os: Optional[str] = None
    sim: Optional[str] = None
    inspection_video: Optional[str] = None

    @model_validator(mode="after")
    def check_nulls(self):
        reject_nulls(self, PHONE_NULLABLE_FIELDS)
        return self


# -------------------------------
# Admin users
# -------------------------------

class AdminUserPublic(CamelModel):
    id: str
    username: str
    email: str
    name: str
    role: str = "staff"
    avatar: Optional[str] = None
    phone: Optional[str] = None
    joined_date: datetime
    last_active: datetime


class AdminUser(AdminUserPublic):
    password: str = Field(..., description="bcrypt hash")

    def public(self) -> AdminUserPublic:
        return AdminUserPublic(**self.model_dump(exclude={"password"}))


class AdminUserCreate(CamelModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1)
    role: AdminRole = "staff"
    avatar: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None

    @model_validator(mode="after")
    def check_nulls(self):
        reject_nulls(self, {"phone", "avatar"})
        return self


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def check_confirmation(self):
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("New password and confirmation do not match")
        return self


# -------------------------------
# Auth
# -------------------------------

class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginResponse(CamelModel):
    message: str = "Login successful"
    user: AdminUserPublic


class AuthStatus(CamelModel):
    authenticated: bool
    admin_id: Optional[str] = None


class Session(BaseModel):
    sid: str
    admin_id: str
    username: str
    created_at: datetime
    expires_at: datetime


# Legacy placeholder table kept from the first iteration of the store
class User(BaseModel):
    id: str
    username: str
    password: str


# -------------------------------
# Settings, catalog, dashboard
# -------------------------------

class Setting(BaseModel):
    key: str
    value: str


class FilterState(CamelModel):
    search: str = ""
    brand: str = "all"
    min_ram: int = 0
    max_price: Optional[int] = Field(DEFAULT_MAX_PRICE, description="None means no cap")
    sort_by: SortOrder = "newest"


class DashboardStats(CamelModel):
    total_phones: int
    inventory_value: int
    potential_profit: int
    unique_brands: int


class Message(BaseModel):
    message: str
