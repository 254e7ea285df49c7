"""
Unit tests for the Redis cache helper.

These tests do not require a running Redis instance; the `fake_redis` fixture
installs a tiny in-memory async client.
"""

import pytest

from app.core import cache


@pytest.mark.asyncio
async def test_float_round_trip_with_ttl(fake_redis) -> None:
    assert await cache.set_float("cooldown:a", 1700000000.5, ttl_seconds=300) is True

    assert await cache.get_float("cooldown:a") == 1700000000.5
    assert fake_redis.expiries["cooldown:a"] == 300


@pytest.mark.asyncio
async def test_ttl_is_at_least_one_second(fake_redis) -> None:
    await cache.set_float("k", 1.0, ttl_seconds=0)

    assert fake_redis.expiries["k"] == 1


@pytest.mark.asyncio
async def test_missing_key_and_garbage_read_as_miss(fake_redis) -> None:
    fake_redis.store["bad"] = "not-a-number"

    assert await cache.get_float("absent") is None
    assert await cache.get_float("bad") is None


@pytest.mark.asyncio
async def test_cache_failures_degrade_to_miss(fake_redis) -> None:
    fake_redis.fail = True

    assert await cache.set_float("k", 1.0, ttl_seconds=10) is False
    assert await cache.get_float("k") is None


@pytest.mark.asyncio
async def test_helpers_without_client() -> None:
    assert cache.get_cache_client() is None
    assert await cache.set_float("k", 1.0, ttl_seconds=10) is False
    assert await cache.get_float("k") is None


@pytest.mark.asyncio
async def test_init_cache_disabled_without_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cache.settings, "REDIS_URL", None)

    assert await cache.init_cache() is None
