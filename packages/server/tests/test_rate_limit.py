"""
Tests for the fixed-window rate limiter and its counter stores.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from roteiro_server.core.config import Settings
from roteiro_server.core.errors import RateLimited
from roteiro_server.core.rate_limit import (
    InMemoryCounterStore,
    RateLimiter,
    RateLimiterConfigError,
    RedisCounterStore,
    build_rate_limiter,
)

WINDOW = 60_000


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(InMemoryCounterStore(clock), clock)


class TestFixedWindow:
    async def test_limit_plus_one(self, limiter):
        results = [await limiter.hit("invite:u1", 3, WINDOW) for _ in range(4)]
        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    async def test_reset_at_is_window_end(self, limiter, clock):
        first = await limiter.hit("k", 1, WINDOW)
        assert first.reset_at == clock.now + WINDOW

        clock.now += 10_000
        second = await limiter.hit("k", 1, WINDOW)
        assert not second.success
        assert second.reset_at == first.reset_at

    async def test_allowed_again_after_reset(self, limiter, clock):
        await limiter.hit("k", 1, WINDOW)
        blocked = await limiter.hit("k", 1, WINDOW)
        assert not blocked.success

        clock.now = blocked.reset_at
        assert (await limiter.hit("k", 1, WINDOW)).success

    async def test_keys_are_independent(self, limiter):
        await limiter.hit("a", 1, WINDOW)
        assert (await limiter.hit("b", 1, WINDOW)).success

    async def test_concurrent_hits_do_not_lose_updates(self, limiter):
        results = await asyncio.gather(*(limiter.hit("k", 10, WINDOW) for _ in range(25)))
        assert sum(r.success for r in results) == 10

    async def test_enforce_raises_with_reset_at(self, limiter):
        await limiter.enforce("k", 1, WINDOW)
        with pytest.raises(RateLimited) as exc_info:
            await limiter.enforce("k", 1, WINDOW)
        assert exc_info.value.status_code == 429
        assert exc_info.value.extra() == {"reset_at": exc_info.value.reset_at}


class TestInMemoryHelpers:
    async def test_reset_single_key(self, clock):
        store = InMemoryCounterStore(clock)
        limiter = RateLimiter(store, clock)
        await limiter.hit("a", 1, WINDOW)
        await limiter.hit("b", 1, WINDOW)

        store.reset("ratelimit:a")

        assert (await limiter.hit("a", 1, WINDOW)).success
        assert not (await limiter.hit("b", 1, WINDOW)).success

    async def test_reset_all(self, clock):
        store = InMemoryCounterStore(clock)
        limiter = RateLimiter(store, clock)
        await limiter.hit("a", 1, WINDOW)
        store.reset()
        assert (await limiter.hit("a", 1, WINDOW)).success

    async def test_purge_expired(self, clock):
        store = InMemoryCounterStore(clock)
        await store.increment("old", 1_000)
        await store.increment("fresh", WINDOW)
        clock.now += 5_000
        assert store.purge_expired() == 1

    async def test_finished_windows_are_dropped_on_increment(self, clock):
        store = InMemoryCounterStore(clock)
        limiter = RateLimiter(store, clock)
        for _ in range(1000):
            await limiter.hit("a", 5, 1_000)
            clock.now += 1_000

        assert len(store) == 1


class TestRedisCounterStore:
    def _client(self, execute_result):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=execute_result)
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=False)
        client = MagicMock()
        client.pipeline.return_value = pipe
        return client, pipe

    async def test_single_transaction(self):
        client, pipe = self._client([True, 1, WINDOW])
        store = RedisCounterStore(AsyncMock(return_value=client))

        count, ttl = await store.increment("ratelimit:k:1", WINDOW)

        assert (count, ttl) == (1, WINDOW)
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with("ratelimit:k:1", 0, px=WINDOW, nx=True)
        pipe.incr.assert_called_once_with("ratelimit:k:1")
        pipe.pttl.assert_called_once_with("ratelimit:k:1")

    async def test_missing_ttl_falls_back_to_window_boundary(self, clock):
        client, _ = self._client([None, 2, -1])
        limiter = RateLimiter(RedisCounterStore(AsyncMock(return_value=client)), clock)

        result = await limiter.hit("k", 5, WINDOW)

        window_end = (clock.now // WINDOW + 1) * WINDOW
        assert result.reset_at == window_end
        assert result.remaining == 3

    async def test_key_includes_window_id(self, clock):
        client, pipe = self._client([True, 1, WINDOW])
        limiter = RateLimiter(RedisCounterStore(AsyncMock(return_value=client)), clock)
        await limiter.hit("org:create:u1", 5, WINDOW)
        pipe.incr.assert_called_once_with(f"ratelimit:org:create:u1:{clock.now // WINDOW}")


class TestBuildRateLimiter:
    def test_production_without_redis_fails_loud(self):
        with pytest.raises(RateLimiterConfigError):
            build_rate_limiter(Settings(environment="production", redis_url=None))

    def test_development_uses_in_memory(self):
        limiter = build_rate_limiter(Settings(environment="development", redis_url=None))
        assert isinstance(limiter.store, InMemoryCounterStore)

    def test_redis_url_selects_shared_store(self):
        get_client = AsyncMock()
        limiter = build_rate_limiter(
            Settings(environment="production", redis_url="redis://localhost:6379/0"),
            get_client=get_client,
        )
        assert isinstance(limiter.store, RedisCounterStore)
