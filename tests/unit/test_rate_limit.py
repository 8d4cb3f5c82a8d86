"""Tests for the fixed-window limiter and the login lockout."""

from unittest.mock import AsyncMock

import pytest

from app.core.errors import TooManyRequests
from app.core.rate_limit import (
    InMemoryRateLimitStore,
    LoginAttemptTracker,
    RateLimiter,
    RateLimitPolicy,
    RedisRateLimitStore,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


POLICY = RateLimitPolicy("TEST", max_requests=3, window_seconds=60)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(InMemoryRateLimitStore(), clock=clock, rng=lambda: 1.0)


class TestRateLimiter:
    async def test_allows_up_to_max_then_rejects(self, limiter: RateLimiter) -> None:
        results = [await limiter.check("k", POLICY) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    async def test_window_reset_allows_again(self, limiter: RateLimiter, clock: FakeClock) -> None:
        for _ in range(4):
            await limiter.check("k", POLICY)
        clock.advance(61)
        result = await limiter.check("k", POLICY)
        assert result.allowed
        assert result.remaining == 2

    async def test_keys_are_independent(self, limiter: RateLimiter) -> None:
        for _ in range(4):
            await limiter.check("a", POLICY)
        assert (await limiter.check("b", POLICY)).allowed

    async def test_headers_and_retry_after(self, limiter: RateLimiter, clock: FakeClock) -> None:
        result = await limiter.check("k", POLICY)
        assert result.headers() == {
            "X-RateLimit-Limit": "3",
            "X-RateLimit-Remaining": "2",
            "X-RateLimit-Reset": "1060",
        }
        clock.advance(15.5)
        assert result.retry_after(clock()) == 45

    async def test_cleanup_purges_expired_entries(self, clock: FakeClock) -> None:
        store = InMemoryRateLimitStore()
        limiter = RateLimiter(store, clock=clock, rng=lambda: 0.0)
        await limiter.check("old", POLICY)
        clock.advance(120)
        await limiter.check("new", POLICY)
        assert await store.size() == 1

    async def test_no_cleanup_when_unlucky_and_small(self, clock: FakeClock) -> None:
        store = InMemoryRateLimitStore()
        limiter = RateLimiter(store, clock=clock, rng=lambda: 0.5)
        await limiter.check("old", POLICY)
        clock.advance(120)
        await limiter.check("new", POLICY)
        assert await store.size() == 2


class TestLoginAttemptTracker:
    async def test_locks_after_max_failures(self, clock: FakeClock) -> None:
        tracker = LoginAttemptTracker(InMemoryRateLimitStore(), max_attempts=5, window_seconds=900, clock=clock)
        for expected_remaining in (4, 3, 2, 1, 0):
            await tracker.ensure_not_locked("Alice")
            assert await tracker.record_failure("Alice") == expected_remaining

        with pytest.raises(TooManyRequests) as exc_info:
            await tracker.ensure_not_locked("alice")
        assert exc_info.value.retry_after == 900
        assert exc_info.value.headers["Retry-After"] == "900"
        assert exc_info.value.body()["retryAfter"] == 900

    async def test_lock_expires_with_window(self, clock: FakeClock) -> None:
        tracker = LoginAttemptTracker(InMemoryRateLimitStore(), max_attempts=2, window_seconds=900, clock=clock)
        await tracker.record_failure("bob")
        await tracker.record_failure("bob")
        clock.advance(901)
        await tracker.ensure_not_locked("bob")

    async def test_reset_clears_failures(self, clock: FakeClock) -> None:
        tracker = LoginAttemptTracker(InMemoryRateLimitStore(), max_attempts=2, clock=clock)
        await tracker.record_failure("carol")
        await tracker.reset("CAROL")
        assert await tracker.record_failure("carol") == 1


class TestRedisStore:
    async def test_first_increment_sets_expiry(self) -> None:
        client = AsyncMock()
        client.incr.return_value = 1
        client.pttl.return_value = 60_000
        store = RedisRateLimitStore(client)

        record = await store.increment("k", 60, now=100.0)

        client.incr.assert_awaited_once_with("ratelimit:k")
        client.pexpire.assert_awaited_once_with("ratelimit:k", 60_000)
        assert record.count == 1
        assert record.reset_time == 160.0

    async def test_missing_ttl_is_repaired(self) -> None:
        client = AsyncMock()
        client.incr.return_value = 4
        client.pttl.return_value = -1
        store = RedisRateLimitStore(client)

        record = await store.increment("k", 30, now=0.0)

        client.pexpire.assert_awaited_once_with("ratelimit:k", 30_000)
        assert record.count == 4
        assert record.reset_time == 30.0

    async def test_peek_missing_key(self) -> None:
        client = AsyncMock()
        client.get.return_value = None
        assert await RedisRateLimitStore(client).peek("k", now=0.0) is None
