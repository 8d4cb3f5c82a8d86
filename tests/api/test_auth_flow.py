"""End-to-end auth tests: login, lockout, logout, refresh, CSRF token."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.core.csrf import CSRF_COOKIE_NAME
from app.core.security import decode_access_token, hash_password, hash_token
from app.models.admin import Admin
from app.services import activity_service
from tests.conftest import admin_headers

PASSWORD = "Correct#Pass1"


def make_admin(**overrides) -> Admin:
    fields = dict(
        id=1,
        username="root",
        email="root@example.com",
        full_name="Root Admin",
        password_hash=hash_password(PASSWORD),
        is_super_admin=True,
        is_active=True,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Admin(**fields)


@pytest.fixture
def lookup():
    with patch("app.services.auth_service.get_admin_by_username", new=AsyncMock()) as mock:
        mock.return_value = make_admin()
        yield mock


async def _login(client: AsyncClient, password: str = PASSWORD, username: str = "root"):
    return await client.post("/api/auth/login", json={"username": username, "password": password})


async def test_login_returns_token_csrf_and_user(client: AsyncClient, lookup: AsyncMock) -> None:
    response = await _login(client)

    assert response.status_code == 200
    body = response.json()
    assert body["csrfHeader"] == "x-csrf-token"
    assert body["user"] == {
        "id": 1,
        "username": "root",
        "fullName": "Root Admin",
        "email": "root@example.com",
        "isSuperAdmin": True,
        "profilePictureUrl": None,
    }
    claims = decode_access_token(body["token"])
    assert claims["user_id"] == 1
    assert claims["is_super_admin"] is True
    assert f"{CSRF_COOKIE_NAME}={hash_token(body['csrfToken'])}" in response.headers["set-cookie"]


async def test_login_is_public_rate_limited_and_hardened(client: AsyncClient, lookup: AsyncMock) -> None:
    response = await _login(client)
    assert response.headers["X-RateLimit-Limit"] == "60"
    assert response.headers["X-RateLimit-Remaining"] == "59"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


async def test_wrong_password_and_unknown_user_look_the_same(
    client: AsyncClient, lookup: AsyncMock
) -> None:
    wrong = await _login(client, password="nope")
    lookup.return_value = None
    unknown = await _login(client, username="ghost")

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "Invalid credentials"}


async def test_lockout_after_five_failures(client: AsyncClient, lookup: AsyncMock) -> None:
    for _ in range(5):
        assert (await _login(client, password="wrong")).status_code == 401

    locked = await _login(client)
    assert locked.status_code == 429
    assert int(locked.headers["Retry-After"]) > 0
    assert locked.json()["retryAfter"] == int(locked.headers["Retry-After"])


async def test_lockout_ignores_username_case(client: AsyncClient, lookup: AsyncMock) -> None:
    for name in ("Root", "ROOT", "root", "rOOt", "RooT"):
        await _login(client, username=name, password="wrong")
    assert (await _login(client)).status_code == 429


async def test_success_resets_failures(client: AsyncClient, lookup: AsyncMock) -> None:
    for _ in range(4):
        await _login(client, password="wrong")
    assert (await _login(client)).status_code == 200
    for _ in range(4):
        await _login(client, password="wrong")
    assert (await _login(client)).status_code == 200


async def test_inactive_account_rejected(client: AsyncClient, lookup: AsyncMock) -> None:
    lookup.return_value = make_admin(is_active=False)
    response = await _login(client)
    assert response.status_code == 401
    assert response.json() == {"error": "Account is inactive"}


async def test_login_records_audit_entries(
    client: AsyncClient, lookup: AsyncMock, audit_writer: AsyncMock
) -> None:
    await _login(client, password="wrong")
    await _login(client)
    await activity_service.drain_pending()

    actions = [c.kwargs["action_type"] for c in audit_writer.await_args_list]
    assert actions == ["login_failed", "login_success"]


async def test_missing_fields_is_400(client: AsyncClient) -> None:
    response = await client.post("/api/auth/login", json={"username": "root"})
    assert response.status_code == 400
    assert "password" in response.json()["error"]


async def test_logout_requires_token(client: AsyncClient) -> None:
    response = await client.post("/api/auth/logout")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized - No token provided"}


async def test_logout_requires_csrf(client: AsyncClient) -> None:
    response = await client.post("/api/auth/logout", headers=admin_headers(csrf=False))
    assert response.status_code == 403
    assert response.json()["code"] == "CSRF_TOKEN_INVALID"


async def test_logout_succeeds_and_is_audited(client: AsyncClient, audit_writer: AsyncMock) -> None:
    response = await client.post("/api/auth/logout", headers=admin_headers())
    await activity_service.drain_pending()

    assert response.status_code == 200
    assert response.json()["success"] is True
    entry = audit_writer.await_args.kwargs
    assert entry["action_type"] == "logout"
    assert entry["admin_id"] == 2


async def test_logout_succeeds_when_audit_write_fails(client: AsyncClient) -> None:
    failing = AsyncMock(side_effect=RuntimeError("db down"))
    with patch("app.services.activity_service.record_activity", new=failing):
        response = await client.post("/api/auth/logout", headers=admin_headers())
        await activity_service.drain_pending()
    assert response.status_code == 200


async def test_refresh_returns_claims(client: AsyncClient) -> None:
    response = await client.post("/api/auth/refresh", headers=admin_headers(assigned_regions=["IN", "AE"]))
    assert response.status_code == 200
    assert response.json()["user"] == {
        "id": 2,
        "username": "editor",
        "isSuperAdmin": False,
        "assignedRegions": ["IN", "AE"],
    }


async def test_expired_token_rejected(client: AsyncClient) -> None:
    from datetime import timedelta

    from app.core.security import create_access_token

    token = create_access_token({"user_id": 2, "is_active": True}, expires_delta=timedelta(seconds=-1))
    response = await client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized - Invalid token"}


async def test_csrf_token_endpoint_issues_cookie(client: AsyncClient) -> None:
    response = await client.get("/api/admin/csrf-token", headers=admin_headers(csrf=False))
    assert response.status_code == 200
    body = response.json()
    assert len(body["csrfToken"]) == 64
    assert hash_token(body["csrfToken"]) in response.headers["set-cookie"]
