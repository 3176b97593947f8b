"""Redis connection management."""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from roteiro_server.core.config import get_settings

_redis_pool: redis.Redis | None = None
_redis_url: Optional[str] = None
_url_configured = False


class RedisNotConfigured(RuntimeError):
    """Raised when a Redis-backed feature is used without ROTEIRO_REDIS_URL."""


def configure_redis(url: Optional[str]) -> None:
    """Point the shared client at ``url``; takes effect on the next connection."""
    global _redis_url, _url_configured
    _redis_url = url
    _url_configured = True


def redis_url() -> Optional[str]:
    if _url_configured:
        return _redis_url
    return get_settings().redis_url


async def get_redis() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        url = redis_url()
        if not url:
            raise RedisNotConfigured("ROTEIRO_REDIS_URL is not set")
        _redis_pool = redis.from_url(url, decode_responses=True)
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None
