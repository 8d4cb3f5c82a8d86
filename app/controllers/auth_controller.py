"""
Auth controller — login, logout, session info & CSRF token.

Login is PUBLIC and CSRF-exempt (no token exists before a session);
it only passes the public rate limit plus the per-username lockout.
Logout and refresh sit in the admin route group, so the pipeline has
already verified the bearer token and CSRF header.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.client_info import get_client_ip, get_user_agent
from app.core.csrf import issue_csrf_token
from app.core.database import get_db
from app.rbac.dependencies import get_current_claims, get_log_activity
from app.schemas import (
    AdminSummary,
    CsrfTokenResponse,
    LoginRequest,
    LoginResponse,
    SessionResponse,
    SessionUser,
    SuccessResponse,
)
from app.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])
admin_router = APIRouter(prefix="/api/admin", tags=["Auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate with username + password → JWT and CSRF token."""
    token, admin = await auth_service.login(
        body.username,
        body.password,
        db,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    csrf = issue_csrf_token(response)
    return LoginResponse(
        token=token,
        csrf_token=csrf["csrfToken"],
        csrf_header=csrf["csrfHeader"],
        user=AdminSummary.model_validate(admin),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    claims: dict[str, Any] = Depends(get_current_claims),
    log_activity=Depends(get_log_activity),
):
    """Stateless logout: the client drops its token.  Always succeeds."""
    log_activity(
        action_type="logout",
        entity_type="admin",
        entity_id=claims.get("user_id"),
        description=f"{claims.get('username')} logged out",
    )
    return SuccessResponse(success=True)


@router.post("/refresh", response_model=SessionResponse)
async def refresh(claims: dict[str, Any] = Depends(get_current_claims)):
    """Return the identity in the current token.  No new token is issued."""
    return SessionResponse(
        user=SessionUser(
            id=claims["user_id"],
            username=claims["username"],
            is_super_admin=bool(claims.get("is_super_admin")),
            assigned_regions=claims.get("assigned_regions"),
        )
    )


@admin_router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(
    response: Response,
    claims: dict[str, Any] = Depends(get_current_claims),
):
    """Issue a fresh CSRF token for the current session."""
    csrf = issue_csrf_token(response)
    return CsrfTokenResponse(csrf_token=csrf["csrfToken"], csrf_header=csrf["csrfHeader"])
