"""Redis store for caching and distributed locks.

Handles:
- Brand logo lookup cache (hits and misses): 7 days
- Sync lock shared by API workers and the cron job, bounded by
  settings.sync_lock_ttl so a crashed run cannot block syncing forever

Redis is optional for the sync engine: every helper raises RuntimeError when
Redis was never initialized, and callers degrade (no brand cache, in-process
guard only).
"""

import json
import logging
import secrets
from typing import Any

import redis.asyncio as redis

from affsync.settings import get_settings

# TTL constants (in seconds)
TTL_BRAND_LOGO = 604800  # 7 days
TTL_SYNC_LOCK = 21600  # 6 hours

# Key prefixes
PREFIX_BRAND_LOGO = "brand_logo:"
PREFIX_LOCK = "lock:"

_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Fail at startup rather than on the first sync.
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _get_redis() -> redis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def cache_get_json(key: str) -> dict[str, Any] | None:
    value = await _get_redis().get(key)
    if value:
        return json.loads(value)
    return None


async def cache_set_json(key: str, value: dict[str, Any], ttl: int) -> None:
    await _get_redis().setex(key, ttl, json.dumps(value))


# ============================================================
# Brand logo lookups
# ============================================================


async def get_brand_logo_cache(domain: str) -> dict[str, Any] | None:
    """Cached brand lookup for a domain.

    Returns:
        {"logo_url": str | None}, or None when the domain was never looked up.
    """
    return await cache_get_json(f"{PREFIX_BRAND_LOGO}{domain.lower()}")


async def set_brand_logo_cache(domain: str, logo_url: str | None) -> None:
    """Cache a lookup result; misses are cached too so they are not retried every run."""
    await cache_set_json(f"{PREFIX_BRAND_LOGO}{domain.lower()}", {"logo_url": logo_url}, TTL_BRAND_LOGO)


# ============================================================
# Distributed locks
# ============================================================


async def acquire_lock(key: str, ttl: int = TTL_SYNC_LOCK) -> str | None:
    """Acquire a distributed lock (SET NX with TTL).

    Returns:
        An ownership token, or None if the lock is held elsewhere.
    """
    token = secrets.token_hex(8)
    acquired = await _get_redis().set(f"{PREFIX_LOCK}{key}", token, nx=True, ex=ttl)
    return token if acquired else None


async def release_lock(key: str, token: str) -> bool:
    """Release a lock only if this token still owns it (it may have expired and been re-taken).

    The compare and the delete run as one server-side script.
    """
    released = await _get_redis().eval(_RELEASE_SCRIPT, 1, f"{PREFIX_LOCK}{key}", token)
    return bool(released)
