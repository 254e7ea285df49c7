"""
Optional Redis client shared by components that can run across several processes.

Design goals:
- Best-effort: if Redis is not configured, not installed or not reachable, callers
  get `None` and keep their state in-process.
- One client per process, created in the app lifespan and closed on shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)

try:  # pragma: no cover - import is validated in environments that install redis
    import redis.asyncio as redis
except ModuleNotFoundError:  # pragma: no cover
    redis = None  # type: ignore[assignment]

if TYPE_CHECKING:
    import redis.asyncio as redis_typing

    RedisClient = redis_typing.Redis
else:
    RedisClient = Any

_redis_client: RedisClient | None = None


async def init_cache() -> RedisClient | None:
    """Create the process-wide Redis client; degrade gracefully if unavailable."""
    global _redis_client

    if not settings.REDIS_URL:
        return None

    if redis is None:
        logger.warning("cache_dependency_missing", dependency="redis")
        return None

    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except Exception as exc:  # pragma: no cover - best-effort init
        logger.warning("cache_ping_failed", error=str(exc), url=settings.REDIS_URL)
        return None

    _redis_client = client
    return client


async def close_cache() -> None:
    """Close the Redis client on shutdown."""
    global _redis_client

    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def get_cache_client() -> RedisClient | None:
    """Expose the shared Redis client (None when running in-process only)."""
    return _redis_client


async def get_float(key: str) -> float | None:
    """Read a float stored under `key`; any cache failure reads as a miss."""
    client = _redis_client
    if client is None:
        return None
    try:
        raw = await client.get(key)
    except Exception as exc:  # pragma: no cover - cache is best-effort
        logger.warning("cache_read_failed", key=key, error=str(exc))
        return None
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("cache_deserialize_failed", key=key)
        return None


async def set_float(key: str, value: float, ttl_seconds: int) -> bool:
    """Store a float with an expiry. Returns False when the write did not happen."""
    client = _redis_client
    if client is None:
        return False
    try:
        await client.set(key, repr(value), ex=max(1, int(ttl_seconds)))
    except Exception as exc:  # pragma: no cover - cache is best-effort
        logger.warning("cache_write_failed", key=key, error=str(exc))
        return False
    return True
