"""
Request pipeline — an explicit, ordered list of stages.

Each stage is `async (ctx) -> Response | None`:
- `None`      → continue with the next stage
- `Response`  → stop here; the response goes straight back to the client

A stage that raises `ApiError` is treated as having returned that
error's JSON response; any other exception is logged and becomes a
500 `{"error": "Internal server error"}`.  No exception crosses a stage
boundary, and a handler that blows up past the pipeline gets the same
500 with the collected headers applied.

Stages run strictly in order, one request at a time per pass.  Headers
that stages put in `ctx.response_headers` are applied to whatever
response leaves the pipeline, terminal or not, unless the handler
already set the same header.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.errors import ApiError

logger = logging.getLogger(__name__)

PUBLIC = "public"
ADMIN = "admin"

_ADMIN_AUTH_PATHS = frozenset({
    "/api/auth/logout",
    "/api/auth/refresh",
    "/api/v1/auth/logout",
    "/api/v1/auth/refresh",
})


@dataclass
class RequestContext:
    request: Request
    route_group: str | None = None
    user: dict[str, Any] | None = None
    region: str | None = None
    log_activity: Callable[..., None] | None = None
    response_headers: dict[str, str] = field(default_factory=dict)


Stage = Callable[[RequestContext], Awaitable[Response | None]]


def _stage_name(stage: Stage) -> str:
    return getattr(stage, "__qualname__", None) or type(stage).__name__


def classify_route(path: str) -> str | None:
    """Map a path to its route group (None = no group-specific stages)."""
    if path in _ADMIN_AUTH_PATHS:
        return ADMIN
    for prefix in ("/api/admin", "/api/v1/admin"):
        if path == prefix or path.startswith(prefix + "/"):
            return ADMIN
    if path.startswith("/api/"):
        return PUBLIC
    return None


class RequestPipeline:
    def __init__(
        self,
        common: Sequence[Stage],
        groups: Mapping[str, Sequence[Stage]],
        classify: Callable[[str], str | None] = classify_route,
    ) -> None:
        self.common = list(common)
        self.groups = {name: list(stages) for name, stages in groups.items()}
        self.classify = classify

    def stages_for(self, route_group: str | None) -> list[Stage]:
        return self.common + self.groups.get(route_group, [])

    async def run(self, ctx: RequestContext) -> Response | None:
        for stage in self.stages_for(ctx.route_group):
            try:
                response = await stage(ctx)
            except ApiError as exc:
                response = exc.to_response()
            except Exception:
                logger.exception("Pipeline stage %s failed", _stage_name(stage))
                response = ApiError().to_response()
            if response is not None:
                return response
        return None


def apply_headers(response: Response, headers: Mapping[str, str]) -> Response:
    for name, value in headers.items():
        if name not in response.headers:
            response.headers[name] = value
    return response


class PipelineMiddleware(BaseHTTPMiddleware):
    """Runs the pipeline, then hands surviving requests to the router."""

    def __init__(self, app, pipeline: RequestPipeline) -> None:
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        ctx = RequestContext(
            request=request,
            route_group=self.pipeline.classify(request.url.path),
        )
        terminal = await self.pipeline.run(ctx)
        if terminal is not None:
            return apply_headers(terminal, ctx.response_headers)

        request.state.user = ctx.user
        request.state.region = ctx.region
        request.state.log_activity = ctx.log_activity
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            response = ApiError().to_response()
        return apply_headers(response, ctx.response_headers)
