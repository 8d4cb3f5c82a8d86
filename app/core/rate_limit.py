"""
Fixed-window rate limiting and login lockout.

Counters live behind the ``RateLimitStore`` interface:

- ``InMemoryRateLimitStore`` — per-process dict guarded by a lock.  Under
  horizontal scaling every instance counts on its own, so the effective
  limit is per instance.
- ``RedisRateLimitStore`` — shared counters for multi-instance deploys
  (``RATE_LIMIT_BACKEND=redis``).

Counts are best-effort: a lost update makes a limit marginally looser or
tighter, never bypasses authentication.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Protocol

import redis.asyncio as redis

from app.core.config import settings
from app.core.errors import TooManyRequests

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    count: int
    reset_time: float  # epoch seconds


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float
    limit: int

    def retry_after(self, now: float) -> int:
        return max(0, math.ceil(self.reset_time - now))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_time)),
        }


PUBLIC_POLICY = RateLimitPolicy(
    "PUBLIC",
    settings.PUBLIC_RATE_LIMIT_MAX,
    settings.PUBLIC_RATE_LIMIT_WINDOW_SECONDS,
)
ADMIN_POLICY = RateLimitPolicy(
    "ADMIN",
    settings.ADMIN_RATE_LIMIT_MAX,
    settings.ADMIN_RATE_LIMIT_WINDOW_SECONDS,
)


# ── Stores ───────────────────────────────────────────────────────────


class RateLimitStore(Protocol):
    async def increment(self, key: str, window_seconds: int, now: float) -> RateLimitRecord: ...

    async def peek(self, key: str, now: float) -> RateLimitRecord | None: ...

    async def reset(self, key: str) -> None: ...

    async def purge_expired(self, now: float) -> int: ...

    async def size(self) -> int: ...


class InMemoryRateLimitStore:
    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    async def increment(self, key: str, window_seconds: int, now: float) -> RateLimitRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None or now > record.reset_time:
                record = RateLimitRecord(count=1, reset_time=now + window_seconds)
                self._records[key] = record
            else:
                record.count += 1
            return replace(record)

    async def peek(self, key: str, now: float) -> RateLimitRecord | None:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            if now > record.reset_time:
                del self._records[key]
                return None
            return replace(record)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    async def purge_expired(self, now: float) -> int:
        with self._lock:
            expired = [k for k, r in self._records.items() if now > r.reset_time]
            for k in expired:
                del self._records[k]
        return len(expired)

    async def size(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class RedisRateLimitStore:
    """Counters as Redis keys with a TTL equal to the window.

    Expired windows disappear on their own, so purging is a no-op.
    """

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit:") -> None:
        self.redis = client
        self.prefix = prefix

    async def increment(self, key: str, window_seconds: int, now: float) -> RateLimitRecord:
        full_key = self.prefix + key
        window_ms = window_seconds * 1000
        count = await self.redis.incr(full_key)
        if count == 1:
            await self.redis.pexpire(full_key, window_ms)
        ttl_ms = await self.redis.pttl(full_key)
        if ttl_ms < 0:
            # Key lost its TTL (e.g. crash between INCR and PEXPIRE).
            await self.redis.pexpire(full_key, window_ms)
            ttl_ms = window_ms
        return RateLimitRecord(count=int(count), reset_time=now + ttl_ms / 1000)

    async def peek(self, key: str, now: float) -> RateLimitRecord | None:
        full_key = self.prefix + key
        count = await self.redis.get(full_key)
        if count is None:
            return None
        ttl_ms = await self.redis.pttl(full_key)
        if ttl_ms < 0:
            return None
        return RateLimitRecord(count=int(count), reset_time=now + ttl_ms / 1000)

    async def reset(self, key: str) -> None:
        await self.redis.delete(self.prefix + key)

    async def purge_expired(self, now: float) -> int:
        return 0

    async def size(self) -> int:
        return 0


def build_rate_limit_store() -> RateLimitStore:
    backend = settings.RATE_LIMIT_BACKEND.lower()
    if backend == "redis":
        logger.info("Rate limiting backed by Redis at %s", settings.REDIS_URL)
        return RedisRateLimitStore(redis.from_url(settings.REDIS_URL, decode_responses=True))
    if backend != "memory":
        raise ValueError(f"RATE_LIMIT_BACKEND must be 'memory' or 'redis', got {backend!r}")
    return InMemoryRateLimitStore()


# ── Limiter ──────────────────────────────────────────────────────────


class RateLimiter:
    """Fixed-window counter check with opportunistic cleanup."""

    CLEANUP_PROBABILITY = 0.01
    CLEANUP_THRESHOLD = 10_000

    def __init__(
        self,
        store: RateLimitStore,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng

    async def check(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self.clock()
        record = await self.store.increment(key, policy.window_seconds, now)
        result = RateLimitResult(
            allowed=record.count <= policy.max_requests,
            remaining=max(0, policy.max_requests - record.count),
            reset_time=record.reset_time,
            limit=policy.max_requests,
        )
        await self._maybe_cleanup(now)
        return result

    async def _maybe_cleanup(self, now: float) -> None:
        if self.rng() < self.CLEANUP_PROBABILITY or await self.store.size() > self.CLEANUP_THRESHOLD:
            purged = await self.store.purge_expired(now)
            if purged:
                logger.debug("Purged %d expired rate-limit entries", purged)


# ── Login lockout ────────────────────────────────────────────────────


class LoginAttemptTracker:
    """Per-username failed-login counter.

    ``max_attempts`` failures inside one window lock the username until
    the window ends.  Unknown usernames are counted exactly like known
    ones so responses do not reveal which accounts exist.
    """

    def __init__(
        self,
        store: RateLimitStore,
        max_attempts: int = 5,
        window_seconds: int = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock

    @staticmethod
    def _key(username: str) -> str:
        return f"login:{username.strip().lower()}"

    async def ensure_not_locked(self, username: str) -> None:
        now = self.clock()
        record = await self.store.peek(self._key(username), now)
        if record is not None and record.count >= self.max_attempts:
            retry_after = max(1, math.ceil(record.reset_time - now))
            logger.warning("Login locked for username %r (%d failures)", username, record.count)
            raise TooManyRequests(
                "Too many failed login attempts. Please try again later.",
                retry_after=retry_after,
            )

    async def record_failure(self, username: str) -> int:
        """Count a failure and return how many attempts remain."""
        record = await self.store.increment(self._key(username), self.window_seconds, self.clock())
        return max(0, self.max_attempts - record.count)

    async def reset(self, username: str) -> None:
        await self.store.reset(self._key(username))


rate_limit_store = build_rate_limit_store()
rate_limiter = RateLimiter(rate_limit_store)
login_attempts = LoginAttemptTracker(
    rate_limit_store,
    max_attempts=settings.LOGIN_MAX_ATTEMPTS,
    window_seconds=settings.LOGIN_LOCKOUT_MINUTES * 60,
)
