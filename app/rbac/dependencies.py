"""
Role gate — authorization dependencies for admin routes.

All decisions are made from the verified token claims that the request
pipeline put on `request.state.user`.  There is deliberately NO database
lookup: a demoted or deactivated admin keeps the claims they were issued
until the token expires (24h).  That bounded staleness is the price of
not hitting the database on every admin request.

Usage in a route:
    @router.get("", response_model=list[AdminOut])
    async def list_users(claims = Depends(require_super_admin), ...): ...

`require_region_access` is exported for region-scoped content handlers
(slider, gallery, team, ...), which live outside this service.
"""

import logging
from typing import Any

from fastapi import Depends, Request

from app.core.errors import Forbidden, Unauthorized

logger = logging.getLogger("rbac")


def _noop_log_activity(**entry: Any) -> None:
    return None


def get_current_claims(request: Request) -> dict[str, Any]:
    """Claims verified by the pipeline's token stage."""
    claims = getattr(request.state, "user", None)
    if not claims:
        raise Unauthorized("Unauthorized - No token provided")
    return claims


def get_log_activity(request: Request):
    """Audit hook attached by the pipeline (no-op outside admin routes)."""
    return getattr(request.state, "log_activity", None) or _noop_log_activity


def require_super_admin(claims: dict[str, Any] = Depends(get_current_claims)) -> dict[str, Any]:
    if not claims.get("is_super_admin"):
        logger.warning("Super-admin access denied for user %s", claims.get("user_id"))
        raise Forbidden("Forbidden - Super admin access required")
    return claims


def has_region_access(claims: dict[str, Any], region: str | None) -> bool:
    if claims.get("is_super_admin"):
        return True
    if not region:
        return False
    return region.upper() in (claims.get("assigned_regions") or [])


def check_region_access(claims: dict[str, Any], region: str | None) -> None:
    if not has_region_access(claims, region):
        logger.warning(
            "Region access denied for user %s (requested: %s, assigned: %s)",
            claims.get("user_id"),
            region,
            claims.get("assigned_regions"),
        )
        raise Forbidden(f"Access denied: You are not assigned to region {region}")


class RegionAccess:
    """
    Dependency that resolves the requested region and enforces access.

    Looks at `?region=`, then a `{region}` path parameter, then the
    region the pipeline resolved for the request.  Returns the code.
    """

    async def __call__(
        self,
        request: Request,
        claims: dict[str, Any] = Depends(get_current_claims),
    ) -> str:
        requested = (
            request.query_params.get("region")
            or request.path_params.get("region")
            or getattr(request.state, "region", None)
        )
        region = requested.upper() if requested else None
        check_region_access(claims, region)
        return region


require_region_access = RegionAccess()
