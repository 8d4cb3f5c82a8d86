"""
Activity service — audit trail writes & queries.

Writes are best-effort: `record_activity` swallows and logs every
failure, and `make_activity_logger` dispatches it as a background task
so the request never waits on, or fails because of, audit logging.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import AsyncSessionLocal
from app.core.errors import NotFound
from app.models.activity_log import ActivityLog
from app.models.admin import Admin

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

_pending: set[asyncio.Task] = set()


async def record_activity(
    *,
    admin_id: int | None,
    action_type: str,
    description: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> None:
    """Append one entry in its own transaction.  Never raises."""
    try:
        async with session_factory() as session:
            session.add(ActivityLog(
                admin_id=admin_id,
                action_type=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                old_values=old_values,
                new_values=new_values,
                ip_address=ip_address,
                user_agent=user_agent,
            ))
            await session.commit()
    except Exception:
        # Don't fail the request if logging fails.
        logger.exception("Activity logging failed (%s by admin %s)", action_type, admin_id)


def dispatch_activity(
    writer: Callable[..., Awaitable[None]] | None = None,
    **entry: Any,
) -> None:
    """Schedule `writer(**entry)` (default `record_activity`) without awaiting it."""
    writer = writer or record_activity
    try:
        task = asyncio.get_running_loop().create_task(writer(**entry))
    except RuntimeError:
        logger.exception("Activity logging skipped: no running event loop")
        return
    _pending.add(task)
    task.add_done_callback(_pending.discard)


def make_activity_logger(
    admin_id: int | None,
    ip_address: str | None,
    user_agent: str | None,
    writer: Callable[..., Awaitable[None]] | None = None,
) -> Callable[..., None]:
    """Build the request-scoped `log_activity(**entry)` hook."""

    def log_activity(**entry: Any) -> None:
        dispatch_activity(
            writer,
            **{
                "admin_id": admin_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
                **entry,
            },
        )

    return log_activity


async def drain_pending() -> None:
    """Wait for in-flight audit writes (called on shutdown)."""
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


# ── Queries ──────────────────────────────────────────────────────────


async def list_activity_logs(
    db: AsyncSession,
    *,
    action_type: str | None = None,
    entity_type: str | None = None,
    admin_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[tuple[ActivityLog, Admin | None]], int]:
    """Return (rows, total) newest first; `limit` is capped at 100."""
    limit = min(limit, MAX_PAGE_SIZE)

    filters = []
    if action_type:
        filters.append(ActivityLog.action_type == action_type)
    if entity_type:
        filters.append(ActivityLog.entity_type == entity_type)
    if admin_id is not None:
        filters.append(ActivityLog.admin_id == admin_id)
    if start_date:
        filters.append(ActivityLog.created_at >= start_date)
    if end_date:
        filters.append(ActivityLog.created_at <= end_date)

    stmt = (
        select(ActivityLog, Admin)
        .outerjoin(Admin, ActivityLog.admin_id == Admin.id)
        .where(*filters)
        .order_by(ActivityLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = [(log, admin) for log, admin in (await db.execute(stmt)).all()]

    count_stmt = select(func.count()).select_from(ActivityLog).where(*filters)
    total = (await db.execute(count_stmt)).scalar_one()
    return rows, total


async def get_activity_log(log_id: int, db: AsyncSession) -> tuple[ActivityLog, Admin | None]:
    stmt = (
        select(ActivityLog, Admin)
        .outerjoin(Admin, ActivityLog.admin_id == Admin.id)
        .where(ActivityLog.id == log_id)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound("Activity log not found")
    return row[0], row[1]
