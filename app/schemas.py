"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.

The admin frontend speaks camelCase; every schema accepts either
spelling on input and emits camelCase.
"""

import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_email(value: str | None) -> str | None:
    if value is not None and not _EMAIL_RE.match(value):
        raise ValueError("email format is invalid")
    return value


Email = Annotated[str, AfterValidator(_check_email)]


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(CamelModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1)


class AdminSummary(CamelModel):
    id: int
    username: str
    full_name: str | None = None
    email: str
    is_super_admin: bool
    profile_picture_url: str | None = None


class LoginResponse(CamelModel):
    token: str
    csrf_token: str
    csrf_header: str
    user: AdminSummary


class CsrfTokenResponse(CamelModel):
    csrf_token: str
    csrf_header: str


class SessionUser(CamelModel):
    id: int
    username: str
    is_super_admin: bool
    assigned_regions: list[str] | None = None


class SessionResponse(CamelModel):
    user: SessionUser


# ── Profile ──────────────────────────────────────────────────────────
class ProfileOut(CamelModel):
    id: int
    username: str
    email: str
    full_name: str | None = None
    profile_picture_url: str | None = None
    is_super_admin: bool
    is_active: bool
    assigned_regions: list[str] = []
    last_login: datetime | None = None
    created_at: datetime


class UpdateProfileRequest(CamelModel):
    full_name: str | None = Field(default=None, max_length=100)
    email: Email | None = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


# ── Admin users ──────────────────────────────────────────────────────
class AdminOut(CamelModel):
    id: int
    username: str
    email: str
    full_name: str | None = None
    is_super_admin: bool
    is_active: bool
    is_test_account: bool = False
    assigned_regions: list[str] = []
    last_login: datetime | None = None
    created_at: datetime


class CreateAdminRequest(CamelModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    email: Email
    password: str = Field(min_length=8)
    full_name: str | None = Field(default=None, max_length=100)
    is_super_admin: bool = False
    assigned_regions: list[str] = []


class UpdateAdminRequest(CamelModel):
    email: Email | None = None
    full_name: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None
    is_super_admin: bool | None = None
    password: str | None = None
    assigned_regions: list[str] | None = None


# ── Regions ──────────────────────────────────────────────────────────
class RegionOut(CamelModel):
    code: str
    name: str
    domain: str | None = None
    route: str | None = None
    is_active: bool = True
    is_default: bool = False


class CurrentRegionOut(CamelModel):
    region: str


class MyRegionsOut(CamelModel):
    available_regions: list[RegionOut]
    is_super_admin: bool


class CreateRegionRequest(CamelModel):
    code: str = Field(min_length=2, max_length=2)
    name: str = Field(min_length=1, max_length=100)
    domain: str | None = None
    route: str | None = None


class RegionStatusRequest(CamelModel):
    is_active: bool


# ── Activity logs ────────────────────────────────────────────────────
class ActivityLogOut(CamelModel):
    id: int
    admin_id: int | None = None
    username: str | None = None
    full_name: str | None = None
    action_type: str
    entity_type: str | None = None
    entity_id: int | None = None
    description: str
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class ActivityLogPage(CamelModel):
    logs: list[ActivityLogOut]
    pagination: Pagination


# ── Generic ──────────────────────────────────────────────────────────
class SuccessResponse(CamelModel):
    success: bool = True
    message: str | None = None
