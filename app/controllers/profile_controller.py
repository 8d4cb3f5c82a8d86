"""Profile controller — the signed-in admin's own account."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.dependencies import get_current_claims, get_log_activity
from app.schemas import ChangePasswordRequest, ProfileOut, SuccessResponse, UpdateProfileRequest
from app.services import user_service

router = APIRouter(prefix="/api/admin/profile", tags=["Profile"])


@router.get("", response_model=ProfileOut)
async def get_profile(
    claims: dict[str, Any] = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    admin = await user_service.get_admin_by_id(claims["user_id"], db)
    return ProfileOut.model_validate(admin)


@router.put("", response_model=ProfileOut)
async def update_profile(
    body: UpdateProfileRequest,
    claims: dict[str, Any] = Depends(get_current_claims),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    admin, old_values = await user_service.update_profile(
        claims["user_id"], full_name=body.full_name, email=body.email, db=db,
    )
    log_activity(
        action_type="user_update",
        entity_type="admin",
        entity_id=admin.id,
        description="Updated own profile",
        old_values=old_values,
        new_values={"fullName": admin.full_name, "email": admin.email},
    )
    return ProfileOut.model_validate(admin)


@router.put("/password", response_model=SuccessResponse)
async def change_password(
    body: ChangePasswordRequest,
    claims: dict[str, Any] = Depends(get_current_claims),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    admin = await user_service.change_password(
        claims["user_id"],
        current_password=body.current_password,
        new_password=body.new_password,
        db=db,
    )
    log_activity(
        action_type="password_change",
        entity_type="admin",
        entity_id=admin.id,
        description="Changed own password",
    )
    return SuccessResponse(success=True, message="Password updated successfully")
