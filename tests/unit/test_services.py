"""Service rules that do not need a real database."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.errors import BadRequest, Conflict, TooManyRequests, Unauthorized
from app.core.rate_limit import InMemoryRateLimitStore, LoginAttemptTracker
from app.core.security import hash_password
from app.models.admin import Admin
from app.models.region import Region
from app.services import activity_service, auth_service, region_service, user_service


def _db() -> MagicMock:
    db = MagicMock()
    db.flush = AsyncMock()
    db.get = AsyncMock(return_value=None)
    db.execute = AsyncMock()
    db.commit = AsyncMock()
    return db


class TestUserGuards:
    async def test_cannot_delete_self(self) -> None:
        with pytest.raises(BadRequest, match="Cannot delete your own account"):
            await user_service.delete_admin(4, acting_admin_id=4, db=_db())

    async def test_cannot_demote_self(self) -> None:
        with pytest.raises(BadRequest, match="super admin status"):
            await user_service.update_admin(4, {"is_super_admin": False}, acting_admin_id=4, db=_db())

    async def test_cannot_deactivate_self(self) -> None:
        with pytest.raises(BadRequest, match="deactivate your own account"):
            await user_service.update_admin(4, {"is_active": False}, acting_admin_id=4, db=_db())

    async def test_weak_password_rejected_on_create(self) -> None:
        with pytest.raises(BadRequest, match="uppercase"):
            await user_service.create_admin(
                username="new", email="n@example.com", password="weakpass!",
                full_name=None, is_super_admin=False, assigned_regions=[], db=_db(),
            )

    async def test_duplicate_rejected(self) -> None:
        db = _db()
        db.execute.return_value.first = MagicMock(return_value=(1,))
        with pytest.raises(Conflict):
            await user_service.create_admin(
                username="taken", email="t@example.com", password="Valid#Pass1",
                full_name=None, is_super_admin=True, assigned_regions=[], db=db,
            )

    async def test_wrong_current_password(self) -> None:
        db = _db()
        db.get.return_value = Admin(id=4, username="u", email="u@x.io", password_hash=hash_password("Old#Pass1"))
        with pytest.raises(Unauthorized, match="Current password is incorrect"):
            await user_service.change_password(
                4, current_password="nope", new_password="New#Pass12", db=db,
            )


class TestRegionRules:
    @pytest.mark.parametrize(
        "code,route,message",
        [
            ("us", "/en-us", "2 uppercase letters"),
            ("USA", "/en-us", "2 uppercase letters"),
            ("US", None, "Either domain or route"),
        ],
    )
    async def test_create_validation(self, code, route, message) -> None:
        with pytest.raises(BadRequest, match=message):
            await region_service.create_region(code=code, name="X", domain=None, route=route, db=_db())

    async def test_create_invalidates_resolver(self) -> None:
        with patch.object(region_service.region_resolver, "invalidate") as invalidate:
            region = await region_service.create_region(
                code="US", name="United States", domain=None, route="/en-us", db=_db(),
            )
        assert region.code == "US"
        invalidate.assert_called_once()

    async def test_default_region_cannot_be_deactivated(self) -> None:
        db = _db()
        db.get.return_value = Region(code="IN", name="India", is_active=True, is_default=True)
        with pytest.raises(BadRequest, match="default region"):
            await region_service.deactivate_region("IN", db)

    async def test_last_active_region_cannot_be_deactivated(self) -> None:
        db = _db()
        db.get.return_value = Region(code="AE", name="UAE", is_active=True, is_default=False)
        db.execute.return_value.scalar_one = MagicMock(return_value=1)
        with pytest.raises(BadRequest, match="last active region"):
            await region_service.set_region_status("AE", False, db)


class TestAuthenticate:
    async def test_locked_username_short_circuits(self) -> None:
        tracker = LoginAttemptTracker(InMemoryRateLimitStore(), max_attempts=1)
        await tracker.record_failure("root")
        with patch.object(auth_service, "get_admin_by_username", new=AsyncMock()) as lookup:
            with pytest.raises(TooManyRequests):
                await auth_service.authenticate_admin("root", "x", _db(), attempts=tracker)
        lookup.assert_not_awaited()

    async def test_unknown_user_counts_as_failure(self) -> None:
        tracker = LoginAttemptTracker(InMemoryRateLimitStore(), max_attempts=5)
        with patch.object(auth_service, "get_admin_by_username", new=AsyncMock(return_value=None)):
            with pytest.raises(Unauthorized, match="Invalid credentials"):
                await auth_service.authenticate_admin("ghost", "x", _db(), attempts=tracker)
        assert await tracker.record_failure("ghost") == 3

    def test_claims_for_regular_admin_carry_regions(self) -> None:
        admin = Admin(id=3, username="ed", is_super_admin=False, is_active=True)
        admin.regions = [Region(code="AE", name="UAE"), Region(code="IN", name="India")]
        claims = auth_service.build_token_claims(admin)
        assert claims["assigned_regions"] == ["AE", "IN"]
        assert claims["user_id"] == 3

    def test_claims_for_super_admin_omit_regions(self) -> None:
        admin = Admin(id=1, username="root", is_super_admin=True, is_active=True)
        assert "assigned_regions" not in auth_service.build_token_claims(admin)


class TestActivityLogging:
    async def test_record_activity_swallows_errors(self) -> None:
        factory = MagicMock(side_effect=RuntimeError("no database"))
        await activity_service.record_activity(
            admin_id=1, action_type="x", description="y", session_factory=factory,
        )

    async def test_logger_merges_request_details(self) -> None:
        writer = AsyncMock()
        log_activity = activity_service.make_activity_logger(5, "1.2.3.4", "pytest", writer=writer)
        log_activity(action_type="region_create", description="Created region: US")
        await activity_service.drain_pending()
        writer.assert_awaited_once_with(
            admin_id=5,
            ip_address="1.2.3.4",
            user_agent="pytest",
            action_type="region_create",
            description="Created region: US",
        )


class TestRegionCacheConsistency:
    async def test_commit_happens_before_invalidation(self) -> None:
        order: list[str] = []
        db = _db()
        db.commit.side_effect = lambda: order.append("commit")
        db.get.return_value = Region(code="AE", name="UAE", is_active=False, is_default=False)
        with patch.object(region_service.region_resolver, "invalidate", side_effect=lambda: order.append("invalidate")):
            await region_service.set_region_status("AE", True, db)
        assert order == ["commit", "invalidate"]

    async def test_deleting_inactive_region_is_a_noop(self) -> None:
        db = _db()
        db.get.return_value = Region(code="AE", name="UAE", is_active=False, is_default=False)
        db.execute.return_value.scalar_one = MagicMock(return_value=1)
        region = await region_service.deactivate_region("AE", db)
        assert region.is_active is False
        db.commit.assert_not_awaited()
