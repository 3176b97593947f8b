"""
Fixed-window rate limiting over a shared counter store.

The window id is ``floor(now / window_ms)``; the counter for ``(key, window)``
is created with a TTL of ``window_ms`` and incremented in one atomic step, so
concurrent callers across instances never lose updates. Used to throttle
invites, org creation and role changes; not a hard security boundary.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import redis.asyncio as redis
import structlog

from roteiro_server.core.config import Settings
from roteiro_server.core.errors import RateLimited

log = structlog.get_logger()

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: int  # epoch milliseconds


class RateLimiterConfigError(RuntimeError):
    """Raised at startup when no shared counter store is configured in production."""


class CounterStore(Protocol):
    async def increment(self, key: str, window_ms: int) -> tuple[int, int]:
        """Atomically create-if-absent (TTL ``window_ms``) and increment ``key``.

        Returns ``(count, remaining_ttl_ms)``.
        """
        ...


class RedisCounterStore:
    """``SET NX PX`` + ``INCR`` + ``PTTL`` in one MULTI/EXEC transaction."""

    def __init__(self, get_client: Callable[[], Awaitable[redis.Redis]]):
        self._get_client = get_client

    async def increment(self, key: str, window_ms: int) -> tuple[int, int]:
        client = await self._get_client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, px=window_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, ttl = await pipe.execute()
        return int(count), int(ttl)


class InMemoryCounterStore:
    """Per-process counters; only correct for single-instance deployments."""

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._entries: dict[str, tuple[int, int]] = {}  # key -> (count, expires_at_ms)
        self._lock = asyncio.Lock()

    async def increment(self, key: str, window_ms: int) -> tuple[int, int]:
        async with self._lock:
            now = self._clock()
            self._drop_expired(now)
            count, expires_at = self._entries.get(key, (0, 0))
            if expires_at <= now:
                count, expires_at = 0, now + window_ms
            count += 1
            self._entries[key] = (count, expires_at)
            return count, expires_at - now

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key (every window of it) or, with no key, everything."""
        if key is None:
            self._entries.clear()
            return
        prefix = f"{key}:"
        for stored in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[stored]

    def purge_expired(self) -> int:
        return self._drop_expired(self._clock())

    def _drop_expired(self, now: int) -> int:
        # One entry per (key, window); finished windows are never read again
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)


class RateLimiter:
    KEY_PREFIX = "ratelimit"

    def __init__(self, store: CounterStore, clock: Clock = now_ms):
        self.store = store
        self._clock = clock

    async def hit(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``key`` and report whether it is within ``limit``."""
        now = self._clock()
        window_id = now // window_ms
        count, ttl = await self.store.increment(f"{self.KEY_PREFIX}:{key}:{window_id}", window_ms)
        if ttl < 0:
            # Counter without expiry; fall back to the window boundary
            ttl = (window_id + 1) * window_ms - now
        return RateLimitResult(
            success=count <= limit,
            remaining=max(0, limit - count),
            reset_at=now + ttl,
        )

    async def enforce(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Like ``hit`` but raises ``RateLimited`` when over the limit."""
        result = await self.hit(key, limit, window_ms)
        if not result.success:
            log.info("rate_limit.exceeded", key=key, limit=limit, reset_at=result.reset_at)
            raise RateLimited(result.reset_at)
        return result


def build_rate_limiter(
    settings: Settings,
    get_client: Optional[Callable[[], Awaitable[redis.Redis]]] = None,
) -> RateLimiter:
    """Pick the counter store for this deployment; fail loud in production without Redis."""
    if settings.redis_url:
        if get_client is None:
            from roteiro_server.core.redis import get_redis

            get_client = get_redis
        return RateLimiter(RedisCounterStore(get_client))

    if settings.is_production:
        raise RateLimiterConfigError(
            "Rate limiting in production requires a shared counter store. "
            "Set ROTEIRO_REDIS_URL; the in-memory limiter is per-instance and bypassable."
        )

    log.warning("rate_limit.in_memory_store", environment=settings.environment)
    return RateLimiter(InMemoryCounterStore())
