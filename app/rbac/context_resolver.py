"""
Region resolver — which tenant site is this request for?

Resolution order (first hit wins, never raises):
1. Route prefix in the request path (`/en-ae/...`), longest route first.
2. Route prefix in the Referer's path (API calls made from a regional page).
3. Domain match against Origin, then Referer, then Host.
4. The default region (flagged default, else first active, else `IN`).

The region list is loaded through an injected async loader (the
`regions` table in production) and cached for a few minutes.  When the
loader fails, the configured fallback list is used instead.

Usage:
    code = await resolver.resolve(request.url.path, request.headers)
"""

import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

FALLBACK_REGION_CODE = "IN"


@dataclass(frozen=True)
class RegionInfo:
    code: str
    name: str = ""
    domain: str | None = None
    route: str | None = None
    is_default: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping) -> "RegionInfo":
        return cls(
            code=str(data["code"]).upper(),
            name=data.get("name") or "",
            domain=data.get("domain"),
            route=data.get("route"),
            is_default=bool(data.get("is_default", False)),
        )


def _route_matches(path: str, route: str) -> bool:
    route = route.rstrip("/")
    if not route:
        return False
    return path == route or path.startswith(route + "/")


def detect_region_from_path(path: str | None, regions: Sequence[RegionInfo]) -> str | None:
    if not path:
        return None
    with_routes = sorted(
        (r for r in regions if r.route),
        key=lambda r: len(r.route),
        reverse=True,
    )
    for region in with_routes:
        if _route_matches(path, region.route):
            return region.code
    return None


def detect_region_from_domain(origin: str | None, regions: Sequence[RegionInfo]) -> str | None:
    if not origin:
        return None
    for region in regions:
        if region.domain and region.domain in origin:
            return region.code
    return None


def default_region(regions: Sequence[RegionInfo]) -> str:
    for region in regions:
        if region.is_default:
            return region.code
    return regions[0].code if regions else FALLBACK_REGION_CODE


def resolve_region_code(
    path: str,
    headers: Mapping[str, str],
    regions: Sequence[RegionInfo],
) -> str:
    code = detect_region_from_path(path, regions)
    if code:
        return code

    referer = headers.get("referer")
    if referer:
        try:
            code = detect_region_from_path(urlsplit(referer).path, regions)
        except ValueError:
            code = None
        if code:
            return code

    origin = headers.get("origin") or referer or headers.get("host")
    code = detect_region_from_domain(origin, regions)
    if code:
        return code

    return default_region(regions)


class RegionResolver:
    def __init__(
        self,
        loader: Callable[[], Awaitable[list[RegionInfo]]],
        fallback: Sequence[RegionInfo] = (),
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._fallback = list(fallback)
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: list[RegionInfo] | None = None
        self._cached_at = 0.0

    async def regions(self) -> list[RegionInfo]:
        now = self._clock()
        if self._cache is not None and now - self._cached_at < self._ttl:
            return self._cache
        try:
            loaded = await self._loader()
        except Exception:
            logger.exception("Failed to load regions; using configured fallback")
            return self._fallback
        self._cache = loaded or self._fallback
        self._cached_at = now
        return self._cache

    def invalidate(self) -> None:
        """Drop the cache; call after any region write."""
        self._cache = None
        self._cached_at = 0.0

    async def resolve(self, path: str, headers: Mapping[str, str]) -> str:
        try:
            return resolve_region_code(path, headers, await self.regions())
        except Exception:
            logger.exception("Region detection failed for %s", path)
            return FALLBACK_REGION_CODE

    async def is_valid(self, code: str) -> bool:
        return any(r.code == code for r in await self.regions())
