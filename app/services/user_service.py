"""
User service — admin account CRUD & profile helpers.

Only super-admins reach the management functions (enforced by the
controller's role gate).  Changes to roles, regions or active state
take effect at the account's next login: existing tokens keep their
claims until they expire.
"""

import asyncio
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequest, Conflict, NotFound, Unauthorized
from app.core.security import hash_password, validate_password_strength, verify_password
from app.models.admin import Admin
from app.services.region_service import get_regions_by_codes


def _require_strong(password: str) -> None:
    errors = validate_password_strength(password)
    if errors:
        raise BadRequest(". ".join(errors))


async def _ensure_unique(
    db: AsyncSession,
    *,
    username: str | None = None,
    email: str | None = None,
    exclude_id: int | None = None,
) -> None:
    clauses = []
    if username:
        clauses.append(Admin.username == username)
    if email:
        clauses.append(Admin.email == email)
    if not clauses:
        return
    stmt = select(Admin.id).where(or_(*clauses))
    if exclude_id is not None:
        stmt = stmt.where(Admin.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise Conflict("Username or email already exists")


def snapshot(admin: Admin) -> dict[str, Any]:
    """Audit-friendly view of the mutable fields."""
    return {
        "email": admin.email,
        "fullName": admin.full_name,
        "isActive": admin.is_active,
        "isSuperAdmin": admin.is_super_admin,
        "assignedRegions": admin.assigned_regions,
    }


async def get_admin_by_id(admin_id: int, db: AsyncSession) -> Admin:
    admin = await db.get(Admin, admin_id)
    if admin is None:
        raise NotFound("User not found")
    return admin


async def list_admins(db: AsyncSession, skip: int = 0, limit: int = 50) -> list[Admin]:
    stmt = select(Admin).order_by(Admin.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_admin(
    *,
    username: str,
    email: str,
    password: str,
    full_name: str | None,
    is_super_admin: bool,
    assigned_regions: list[str],
    db: AsyncSession,
) -> Admin:
    _require_strong(password)
    await _ensure_unique(db, username=username, email=email)

    admin = Admin(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=await asyncio.to_thread(hash_password, password),
        is_super_admin=is_super_admin,
        is_active=True,
    )
    if not is_super_admin:
        admin.regions = await get_regions_by_codes(assigned_regions, db)
    db.add(admin)
    await db.flush()
    return admin


async def update_admin(
    target_id: int,
    changes: dict[str, Any],
    *,
    acting_admin_id: int,
    db: AsyncSession,
) -> tuple[Admin, dict[str, Any]]:
    """Apply `changes` (only keys present are touched); return (admin, old snapshot)."""
    if target_id == acting_admin_id and changes.get("is_super_admin") is False:
        raise BadRequest("Cannot remove your own super admin status")
    if target_id == acting_admin_id and changes.get("is_active") is False:
        raise BadRequest("Cannot deactivate your own account")

    admin = await get_admin_by_id(target_id, db)
    old_values = snapshot(admin)

    if changes.get("email") is not None:
        await _ensure_unique(db, email=changes["email"], exclude_id=admin.id)
        admin.email = changes["email"]
    if "full_name" in changes:
        admin.full_name = changes["full_name"]
    if changes.get("is_active") is not None:
        admin.is_active = changes["is_active"]
    if changes.get("is_super_admin") is not None:
        admin.is_super_admin = changes["is_super_admin"]
    if changes.get("password"):
        _require_strong(changes["password"])
        admin.password_hash = await asyncio.to_thread(hash_password, changes["password"])
    if changes.get("assigned_regions") is not None:
        admin.regions = await get_regions_by_codes(changes["assigned_regions"], db)

    await db.flush()
    return admin, old_values


async def delete_admin(target_id: int, *, acting_admin_id: int, db: AsyncSession) -> Admin:
    if target_id == acting_admin_id:
        raise BadRequest("Cannot delete your own account")
    admin = await get_admin_by_id(target_id, db)
    await db.delete(admin)
    await db.flush()
    return admin


# ── Own profile ──────────────────────────────────────────────────────


async def update_profile(
    admin_id: int,
    *,
    full_name: str | None,
    email: str | None,
    db: AsyncSession,
) -> tuple[Admin, dict[str, Any]]:
    admin = await get_admin_by_id(admin_id, db)
    old_values = {"fullName": admin.full_name, "email": admin.email}
    if email is not None and email != admin.email:
        await _ensure_unique(db, email=email, exclude_id=admin.id)
        admin.email = email
    if full_name is not None:
        admin.full_name = full_name
    await db.flush()
    return admin, old_values


async def change_password(
    admin_id: int,
    *,
    current_password: str,
    new_password: str,
    db: AsyncSession,
) -> Admin:
    admin = await get_admin_by_id(admin_id, db)
    if not await asyncio.to_thread(verify_password, current_password, admin.password_hash):
        raise Unauthorized("Current password is incorrect")
    _require_strong(new_password)
    admin.password_hash = await asyncio.to_thread(hash_password, new_password)
    await db.flush()
    return admin
