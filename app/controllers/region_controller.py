"""
Region controller.

Public routes expose the active regions and the region resolved for
the current request.  Admin routes list the caller's accessible
regions; everything else is super-admin only.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.dependencies import (
    get_current_claims,
    get_log_activity,
    has_region_access,
    require_super_admin,
)
from app.schemas import (
    CreateRegionRequest,
    CurrentRegionOut,
    MyRegionsOut,
    RegionOut,
    RegionStatusRequest,
    SuccessResponse,
)
from app.services import region_service

router = APIRouter(prefix="/api/regions", tags=["Regions"])
admin_router = APIRouter(prefix="/api/admin/regions", tags=["Regions"])


# ── Public ───────────────────────────────────────────────────────────
@router.get("", response_model=list[RegionOut])
async def list_active_regions(db: AsyncSession = Depends(get_db)):
    regions = await region_service.list_regions(db, active_only=True)
    return [RegionOut.model_validate(r) for r in regions]


@router.get("/current", response_model=CurrentRegionOut)
async def current_region(request: Request):
    return CurrentRegionOut(region=request.state.region)


# ── Admin ────────────────────────────────────────────────────────────
@admin_router.get("/me", response_model=MyRegionsOut)
async def my_regions(
    claims: dict[str, Any] = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    regions = await region_service.list_regions(db, active_only=True)
    return MyRegionsOut(
        available_regions=[
            RegionOut.model_validate(r) for r in regions if has_region_access(claims, r.code)
        ],
        is_super_admin=bool(claims.get("is_super_admin")),
    )


@admin_router.get("", response_model=list[RegionOut])
async def list_all_regions(
    claims: dict[str, Any] = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    regions = await region_service.list_regions(db)
    return [RegionOut.model_validate(r) for r in regions]


@admin_router.post("", response_model=RegionOut, status_code=201)
async def create_region(
    body: CreateRegionRequest,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    region = await region_service.create_region(
        code=body.code,
        name=body.name,
        domain=body.domain,
        route=body.route,
        db=db,
    )
    log_activity(
        action_type="region_create",
        entity_type="region",
        description=f"Created region: {region.code}",
        new_values={"code": region.code, "name": region.name, "domain": region.domain, "route": region.route},
    )
    return RegionOut.model_validate(region)


@admin_router.put("/{code}/status", response_model=RegionOut)
async def set_region_status(
    code: str,
    body: RegionStatusRequest,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    region = await region_service.set_region_status(code, body.is_active, db)
    log_activity(
        action_type="region_status",
        entity_type="region",
        description=f"{'Activated' if region.is_active else 'Deactivated'} region: {region.code}",
        new_values={"isActive": region.is_active},
    )
    return RegionOut.model_validate(region)


@admin_router.delete("/{code}", response_model=SuccessResponse)
async def delete_region(
    code: str,
    claims: dict[str, Any] = Depends(require_super_admin),
    log_activity=Depends(get_log_activity),
    db: AsyncSession = Depends(get_db),
):
    region = await region_service.deactivate_region(code, db)
    log_activity(
        action_type="region_delete",
        entity_type="region",
        description=f"Deactivated region: {region.code}",
        old_values={"code": region.code, "name": region.name},
    )
    return SuccessResponse(
        success=True,
        message=f"Region {region.code} has been deactivated successfully.",
    )
