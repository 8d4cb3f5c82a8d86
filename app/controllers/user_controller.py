"""
User controller — admin account management (super-admin only).

Every route depends on `require_super_admin`, which checks the token
claim only.  Controllers are THIN: they delegate to services, record
the audit entry, and return schemas.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.dependencies import get_log_activity, require_super_admin
from app.schemas import AdminOut, CreateAdminRequest, SuccessResponse, UpdateAdminRequest
from app.services import user_service

router = APIRouter(prefix="/api/admin/users", tags=["Users"])


@router.get("", response_model=list[AdminOut])
async def list_users(
    claims: dict[str, Any] = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    admins = await user_service.list_admins(db, skip, limit)
    return [AdminOut.model_validate(a) for a in admins]


@router.post("", response_model=AdminOut, status_code=201)
async def create_user(
    body: CreateAdminRequest,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    admin = await user_service.create_admin(
        username=body.username,
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        is_super_admin=body.is_super_admin,
        assigned_regions=body.assigned_regions,
        db=db,
    )
    log_activity(
        action_type="user_create",
        entity_type="admin",
        entity_id=admin.id,
        description=f"Created user {admin.username}",
        new_values=user_service.snapshot(admin),
    )
    return AdminOut.model_validate(admin)


@router.put("/{user_id}", response_model=SuccessResponse)
async def update_user(
    user_id: int,
    body: UpdateAdminRequest,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    admin, old_values = await user_service.update_admin(
        user_id, changes, acting_admin_id=claims["user_id"], db=db,
    )
    new_values = user_service.snapshot(admin)
    if changes.get("password"):
        new_values["passwordChanged"] = True
    log_activity(
        action_type="user_update",
        entity_type="admin",
        entity_id=admin.id,
        description=f"Updated user ID {admin.id}",
        old_values=old_values,
        new_values=new_values,
    )
    return SuccessResponse(success=True)


@router.delete("/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: int,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    admin = await user_service.delete_admin(user_id, acting_admin_id=claims["user_id"], db=db)
    log_activity(
        action_type="user_delete",
        entity_type="admin",
        entity_id=user_id,
        description=f"Deleted user {admin.username}",
        old_values={"username": admin.username, "email": admin.email},
    )
    return SuccessResponse(success=True)
