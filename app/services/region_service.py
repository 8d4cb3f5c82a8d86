"""
Region service — the regions table, its cache-backed resolver, and
super-admin region management.

Deactivation is a soft delete: the row stays and `is_active` flips.
The default region and the last active region can never be deactivated.
"""

import logging
import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.errors import BadRequest, Conflict, NotFound
from app.models.region import Region
from app.rbac.context_resolver import RegionInfo, RegionResolver

logger = logging.getLogger(__name__)

REGION_CODE_RE = re.compile(r"^[A-Z]{2}$")


def _to_info(region: Region) -> RegionInfo:
    return RegionInfo(
        code=region.code,
        name=region.name,
        domain=region.domain,
        route=region.route,
        is_default=region.is_default,
    )


async def load_active_regions() -> list[RegionInfo]:
    """Loader for the resolver — opens its own short-lived session."""
    async with AsyncSessionLocal() as session:
        stmt = (
            select(Region)
            .where(Region.is_active == True)  # noqa: E712
            .order_by(Region.is_default.desc(), Region.name)
        )
        result = await session.execute(stmt)
        return [_to_info(r) for r in result.scalars().all()]


region_resolver = RegionResolver(
    loader=load_active_regions,
    fallback=[RegionInfo.from_mapping(r) for r in settings.REGIONS],
    ttl_seconds=settings.REGION_CACHE_SECONDS,
)


# ── Queries ──────────────────────────────────────────────────────────


async def list_regions(db: AsyncSession, *, active_only: bool = False) -> list[Region]:
    stmt = select(Region).order_by(Region.is_default.desc(), Region.name)
    if active_only:
        stmt = stmt.where(Region.is_active == True)  # noqa: E712
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_region(code: str, db: AsyncSession) -> Region:
    region = await db.get(Region, code.upper())
    if region is None:
        raise NotFound("Region not found")
    return region


async def get_regions_by_codes(codes: list[str], db: AsyncSession) -> list[Region]:
    """Resolve codes to rows; any unknown code is a 400."""
    wanted = {c.upper() for c in codes}
    if not wanted:
        return []
    result = await db.execute(select(Region).where(Region.code.in_(wanted)))
    found = list(result.scalars().all())
    missing = wanted - {r.code for r in found}
    if missing:
        raise BadRequest(f"Unknown region code(s): {', '.join(sorted(missing))}")
    return found


# ── Mutations ────────────────────────────────────────────────────────


async def create_region(
    *,
    code: str,
    name: str,
    domain: str | None,
    route: str | None,
    db: AsyncSession,
) -> Region:
    if not code or not name:
        raise BadRequest("code and name are required")
    if not domain and not route:
        raise BadRequest("Either domain or route must be provided")
    if not REGION_CODE_RE.match(code):
        raise BadRequest("Region code must be 2 uppercase letters (e.g., US, UK)")
    if await db.get(Region, code) is not None:
        raise Conflict("Region code already exists")

    region = Region(code=code, name=name, domain=domain, route=route, is_active=True, is_default=False)
    db.add(region)
    await _commit_and_invalidate(db)
    return region


async def _commit_and_invalidate(db: AsyncSession) -> None:
    """Commit first so a concurrent reload cannot cache the old rows."""
    await db.commit()
    region_resolver.invalidate()


async def _active_count(db: AsyncSession) -> int:
    stmt = select(func.count()).select_from(Region).where(Region.is_active == True)  # noqa: E712
    return (await db.execute(stmt)).scalar_one()


async def set_region_status(code: str, is_active: bool, db: AsyncSession) -> Region:
    region = await get_region(code, db)
    if not is_active and region.is_active:
        if region.is_default:
            raise BadRequest("Cannot deactivate the default region")
        if await _active_count(db) <= 1:
            raise BadRequest("Cannot deactivate the last active region")
    region.is_active = is_active
    await _commit_and_invalidate(db)
    return region


async def deactivate_region(code: str, db: AsyncSession) -> Region:
    region = await get_region(code, db)
    if not region.is_active:
        return region
    if region.is_default:
        raise BadRequest("Cannot delete the default region")
    if await _active_count(db) <= 1:
        raise BadRequest("Cannot delete the last active region")
    region.is_active = False
    await _commit_and_invalidate(db)
    return region


async def seed_default_regions(db: AsyncSession) -> int:
    """Insert the configured regions if the table is empty.  Idempotent."""
    existing = (await db.execute(select(func.count()).select_from(Region))).scalar_one()
    if existing:
        return 0
    for data in settings.REGIONS:
        info = RegionInfo.from_mapping(data)
        db.add(Region(
            code=info.code,
            name=info.name or info.code,
            domain=info.domain,
            route=info.route,
            is_active=True,
            is_default=info.is_default,
        ))
    await db.flush()
    logger.info("Seeded %d default regions", len(settings.REGIONS))
    return len(settings.REGIONS)
