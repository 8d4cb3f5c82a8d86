"""Pytest configuration and fixtures.

HTTP tests run against app.main:app over ASGI.  No database is needed:
`get_db` is overridden with a mock session, the region loader returns
the configured regions, and audit writes are replaced by an AsyncMock.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME
from app.core.database import get_db
from app.core.rate_limit import rate_limit_store
from app.core.security import create_access_token, hash_token
from app.main import app
from app.rbac.context_resolver import RegionInfo
from app.services import region_service

TEST_CSRF_TOKEN = "a" * 64


async def _configured_regions() -> list[RegionInfo]:
    return [RegionInfo.from_mapping(r) for r in settings.REGIONS]


@pytest.fixture(autouse=True)
def _isolated_state():
    """Fresh rate-limit counters and region cache for every test."""
    rate_limit_store.clear()
    resolver = region_service.region_resolver
    with patch.object(resolver, "_loader", _configured_regions):
        resolver.invalidate()
        yield
        resolver.invalidate()
    rate_limit_store.clear()


@pytest.fixture
def audit_writer():
    """Replaces the database audit writer; inspect `.await_args_list`."""
    with patch("app.services.activity_service.record_activity", new=AsyncMock()) as writer:
        yield writer


@pytest.fixture
def db_session() -> MagicMock:
    session = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
async def client(db_session: MagicMock, audit_writer: AsyncMock) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI)."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_claims(**overrides: Any) -> dict[str, Any]:
    claims: dict[str, Any] = {
        "sub": "2",
        "user_id": 2,
        "username": "editor",
        "is_super_admin": False,
        "is_active": True,
        "assigned_regions": ["IN"],
    }
    claims.update(overrides)
    return claims


def admin_headers(csrf: bool = True, **claim_overrides: Any) -> dict[str, str]:
    """Bearer token (and optionally a matching CSRF header + cookie)."""
    headers = {"Authorization": f"Bearer {create_access_token(make_claims(**claim_overrides))}"}
    if csrf:
        headers[CSRF_HEADER_NAME] = TEST_CSRF_TOKEN
        headers["Cookie"] = f"{CSRF_COOKIE_NAME}={hash_token(TEST_CSRF_TOKEN)}"
    return headers
