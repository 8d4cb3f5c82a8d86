"""
Authentication service.

Handles:
- Login with per-username lockout (5 failures / 15 minutes)
- Token claim construction (everything the role gate needs, so admin
  requests never touch the database for authorization)
- Last-login bookkeeping and login audit entries

Unknown usernames and wrong passwords are indistinguishable to the
caller: same status, same body, one PBKDF2 derivation each, and both
count towards the lockout.

All business logic lives here — controllers call service methods
and return the result.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Unauthorized
from app.core.rate_limit import LoginAttemptTracker, login_attempts
from app.core.security import DUMMY_PASSWORD_HASH, create_access_token, verify_password
from app.models.admin import Admin
from app.services import activity_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


# ── Helpers ──────────────────────────────────────────────────────────

def build_token_claims(admin: Admin) -> dict[str, Any]:
    """Construct the JWT payload for an admin."""
    claims: dict[str, Any] = {
        "sub": str(admin.id),
        "user_id": admin.id,
        "username": admin.username,
        "is_super_admin": admin.is_super_admin,
        "is_active": admin.is_active,
    }
    if not admin.is_super_admin:
        claims["assigned_regions"] = admin.assigned_regions
    return claims


async def get_admin_by_username(username: str, db: AsyncSession) -> Admin | None:
    result = await db.execute(select(Admin).where(Admin.username == username))
    return result.scalar_one_or_none()


# ── Login ────────────────────────────────────────────────────────────

async def authenticate_admin(
    username: str,
    password: str,
    db: AsyncSession,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    attempts: LoginAttemptTracker = login_attempts,
) -> Admin:
    """Verify credentials and return the admin, or raise.

    Raises TooManyRequests while the username is locked out and
    Unauthorized for bad credentials or an inactive account.
    """
    await attempts.ensure_not_locked(username)

    admin = await get_admin_by_username(username, db)
    stored_hash = admin.password_hash if admin is not None else DUMMY_PASSWORD_HASH
    valid = await asyncio.to_thread(verify_password, password, stored_hash)

    if admin is None or not valid:
        remaining = await attempts.record_failure(username)
        logger.warning("Failed login for %r from %s (%d attempts left)", username, ip_address, remaining)
        if admin is not None:
            activity_service.dispatch_activity(
                admin_id=admin.id,
                action_type="login_failed",
                entity_type="admin",
                entity_id=admin.id,
                description=f"Failed login attempt for {admin.username}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
        raise Unauthorized(INVALID_CREDENTIALS)

    if not admin.is_active:
        logger.warning("Login refused for inactive admin %s", admin.id)
        raise Unauthorized("Account is inactive")

    await attempts.reset(username)
    admin.last_login = datetime.now(timezone.utc)
    await db.flush()

    activity_service.dispatch_activity(
        admin_id=admin.id,
        action_type="login_success",
        entity_type="admin",
        entity_id=admin.id,
        description=f"{admin.username} logged in",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return admin


async def login(
    username: str,
    password: str,
    db: AsyncSession,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, Admin]:
    """Authenticate and issue a 24h access token."""
    admin = await authenticate_admin(
        username, password, db, ip_address=ip_address, user_agent=user_agent,
    )
    return create_access_token(build_token_claims(admin)), admin
