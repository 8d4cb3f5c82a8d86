"""
Pipeline stages, in the order `build_request_pipeline` runs them:

Common (every request):
  1. ErrorTrackingStage       – one-time observability init
  2. HttpsEnforcementStage    – 301 plaintext requests to https
  3. SecurityHeadersStage     – headers on every response from here on
  4. CorsStage                – allow-listed Origin; OPTIONS → 204
  5. RegionStage              – ctx.region
  6. BodySizeLimitStage       – 413 on oversized JSON / other bodies

Public group:
  7. RateLimitStage(PUBLIC)   – keyed by ip + path

Admin group:
  7. BearerAuthStage          – ctx.user from a verified JWT
  8. CsrfStage                – double-submit check on writes
  9. RateLimitStage(ADMIN)    – keyed by user id (ip fallback)
 10. AuditHookStage           – ctx.log_activity
"""

import logging
from collections.abc import Callable, Sequence

from starlette.responses import RedirectResponse, Response

from app.core.client_info import get_client_ip, get_user_agent
from app.core.config import settings
from app.core.csrf import requires_csrf, validate_csrf
from app.core.errors import BadRequest, Forbidden, PayloadTooLarge, TooManyRequests, Unauthorized
from app.core.logging_config import setup_error_tracking
from app.core.rate_limit import (
    ADMIN_POLICY,
    PUBLIC_POLICY,
    RateLimiter,
    RateLimitPolicy,
    rate_limiter,
)
from app.core.security import InvalidToken, decode_access_token
from app.middleware.pipeline import ADMIN, PUBLIC, RequestContext, RequestPipeline
from app.rbac.context_resolver import RegionResolver
from app.services.activity_service import make_activity_logger

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
}


class ErrorTrackingStage:
    def __init__(self, enabled: bool = True, init: Callable[[], None] = setup_error_tracking) -> None:
        self.enabled = enabled
        self.init = init
        self.initialised = False

    async def __call__(self, ctx: RequestContext) -> Response | None:
        if not self.initialised:
            self.initialised = True
            if self.enabled:
                self.init()
        return None


class HttpsEnforcementStage:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    async def __call__(self, ctx: RequestContext) -> Response | None:
        if not self.enabled:
            return None
        headers = ctx.request.headers
        proto = headers.get("x-forwarded-proto") or headers.get("cf-visitor") or ""
        if proto == "http" or '"scheme":"http"' in proto.replace(" ", ""):
            url = ctx.request.url.replace(scheme="https")
            return RedirectResponse(str(url), status_code=301)
        return None


class SecurityHeadersStage:
    def __init__(self, headers: dict[str, str] | None = None) -> None:
        self.headers = headers if headers is not None else SECURITY_HEADERS.copy()

    async def __call__(self, ctx: RequestContext) -> Response | None:
        ctx.response_headers.update(self.headers)
        return None


class CorsStage:
    ALLOW_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    ALLOW_HEADERS = "Content-Type, Authorization, X-CSRF-Token"

    def __init__(self, allowed_origins: Sequence[str]) -> None:
        self.allowed_origins = frozenset(allowed_origins)

    async def __call__(self, ctx: RequestContext) -> Response | None:
        origin = ctx.request.headers.get("origin")
        if origin and origin in self.allowed_origins:
            ctx.response_headers["Access-Control-Allow-Origin"] = origin
            ctx.response_headers["Access-Control-Allow-Credentials"] = "true"
        ctx.response_headers["Vary"] = "Origin"
        ctx.response_headers["Access-Control-Allow-Methods"] = self.ALLOW_METHODS
        ctx.response_headers["Access-Control-Allow-Headers"] = self.ALLOW_HEADERS
        ctx.response_headers["Access-Control-Max-Age"] = "86400"

        if ctx.request.method == "OPTIONS":
            return Response(status_code=204)
        return None


class RegionStage:
    def __init__(self, resolver: RegionResolver) -> None:
        self.resolver = resolver

    async def __call__(self, ctx: RequestContext) -> Response | None:
        ctx.region = await self.resolver.resolve(ctx.request.url.path, ctx.request.headers)
        return None


class BodySizeLimitStage:
    def __init__(self, json_limit: int, default_limit: int) -> None:
        self.json_limit = json_limit
        self.default_limit = default_limit

    async def __call__(self, ctx: RequestContext) -> Response | None:
        raw = ctx.request.headers.get("content-length")
        if not raw:
            return None
        try:
            size = int(raw)
        except ValueError:
            raise BadRequest("Invalid Content-Length header")

        content_type = ctx.request.headers.get("content-type", "")
        if "application/json" in content_type:
            if size > self.json_limit:
                raise PayloadTooLarge(
                    f"Request body too large. Maximum size for JSON requests is "
                    f"{self.json_limit // (1024 * 1024)}MB."
                )
        elif size > self.default_limit:
            raise PayloadTooLarge(
                f"Request body too large. Maximum size is {self.default_limit // (1024 * 1024)}MB."
            )
        return None


class RateLimitStage:
    def __init__(self, policy: RateLimitPolicy, limiter: RateLimiter = rate_limiter) -> None:
        self.policy = policy
        self.limiter = limiter

    def key_for(self, ctx: RequestContext) -> str:
        ip = get_client_ip(ctx.request)
        if self.policy.name == "ADMIN":
            if ctx.user and ctx.user.get("user_id") is not None:
                return f"admin:{ctx.user['user_id']}"
            return f"admin:{ip}"
        return f"public:{ip}:{ctx.request.url.path}"

    async def __call__(self, ctx: RequestContext) -> Response | None:
        result = await self.limiter.check(self.key_for(ctx), self.policy)
        ctx.response_headers.update(result.headers())
        if not result.allowed:
            logger.warning("Rate limit exceeded for %s", self.key_for(ctx))
            raise TooManyRequests(retry_after=result.retry_after(self.limiter.clock()))
        return None


class BearerAuthStage:
    def __init__(self, secret: str | None = None, previous_secret: str | None = None) -> None:
        self.secret = secret
        self.previous_secret = previous_secret

    async def __call__(self, ctx: RequestContext) -> Response | None:
        header = ctx.request.headers.get("authorization", "")
        if not header.startswith("Bearer "):
            raise Unauthorized("Unauthorized - No token provided")

        try:
            claims = decode_access_token(
                header[7:].strip(),
                secret=self.secret,
                previous_secret=self.previous_secret,
            )
        except InvalidToken:
            raise Unauthorized("Unauthorized - Invalid token")

        # Claims-only check: no database round trip.
        if claims.get("is_active") is False:
            raise Forbidden("Account is inactive")
        if claims.get("rotation_needed"):
            logger.info("Token for user %s signed with previous secret", claims.get("user_id"))

        ctx.user = claims
        return None


class CsrfStage:
    async def __call__(self, ctx: RequestContext) -> Response | None:
        request = ctx.request
        if requires_csrf(request.method, request.url.path) and not validate_csrf(request):
            logger.warning("CSRF validation failed on %s %s", request.method, request.url.path)
            raise Forbidden("Invalid or missing CSRF token", code="CSRF_TOKEN_INVALID")
        return None


class AuditHookStage:
    async def __call__(self, ctx: RequestContext) -> Response | None:
        if ctx.user is None:
            return None
        ctx.log_activity = make_activity_logger(
            admin_id=ctx.user.get("user_id"),
            ip_address=get_client_ip(ctx.request),
            user_agent=get_user_agent(ctx.request),
        )
        return None


def build_request_pipeline(
    resolver: RegionResolver,
    limiter: RateLimiter = rate_limiter,
) -> RequestPipeline:
    return RequestPipeline(
        common=[
            ErrorTrackingStage(enabled=settings.ERROR_TRACKING_ENABLED),
            HttpsEnforcementStage(enabled=settings.ENFORCE_HTTPS),
            SecurityHeadersStage(),
            CorsStage(settings.allowed_origins),
            RegionStage(resolver),
            BodySizeLimitStage(settings.JSON_BODY_LIMIT, settings.DEFAULT_BODY_LIMIT),
        ],
        groups={
            PUBLIC: [RateLimitStage(PUBLIC_POLICY, limiter)],
            ADMIN: [
                BearerAuthStage(previous_secret=settings.JWT_SECRET_PREVIOUS),
                CsrfStage(),
                RateLimitStage(ADMIN_POLICY, limiter),
                AuditHookStage(),
            ],
        },
    )
