"""Activity log controller — read-only audit trail (super-admin only)."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.activity_log import ActivityLog
from app.models.admin import Admin
from app.rbac.dependencies import require_super_admin
from app.schemas import ActivityLogOut, ActivityLogPage, Pagination
from app.services import activity_service

router = APIRouter(prefix="/api/admin/activity-logs", tags=["Activity Logs"])


def _to_out(log: ActivityLog, admin: Admin | None) -> ActivityLogOut:
    out = ActivityLogOut.model_validate(log)
    if admin is not None:
        out.username = admin.username
        out.full_name = admin.full_name
    return out


@router.get("", response_model=ActivityLogPage)
async def list_logs(
    claims: dict[str, Any] = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    action_type: str | None = None,
    entity_type: str | None = None,
    admin_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    limit = min(limit, activity_service.MAX_PAGE_SIZE)
    rows, total = await activity_service.list_activity_logs(
        db,
        action_type=action_type,
        entity_type=entity_type,
        admin_id=admin_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return ActivityLogPage(
        logs=[_to_out(log, admin) for log, admin in rows],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        ),
    )


@router.get("/{log_id}", response_model=ActivityLogOut)
async def get_log(
    log_id: int,
    claims: dict[str, Any] = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    log, admin = await activity_service.get_activity_log(log_id, db)
    return _to_out(log, admin)
