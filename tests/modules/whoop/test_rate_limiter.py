import pytest

from app.modules.whoop.rate_limiter import DataCategory, TTLCache, WhoopRateLimiter


@pytest.fixture
def limiter(clock) -> WhoopRateLimiter:
    return WhoopRateLimiter(daily_limit=10_000, minute_limit=100, clock=clock)


def test_fresh_limiter_allows(limiter: WhoopRateLimiter) -> None:
    decision = limiter.can_make_request()

    assert decision.allowed is True
    assert decision.reason is None


def test_minute_window_denies_at_limit_and_recovers(limiter, clock) -> None:
    for _ in range(100):
        limiter.record_request()

    decision = limiter.can_make_request()
    assert decision.allowed is False
    assert decision.reason == "Per-minute rate limit exceeded (100 requests/minute)"
    assert 0 < decision.wait_ms <= 60_000

    clock.advance(60.5)
    assert limiter.can_make_request().allowed is True


def test_daily_limit_denies(clock) -> None:
    limiter = WhoopRateLimiter(daily_limit=3, minute_limit=100, clock=clock)
    for _ in range(3):
        limiter.record_request()
        clock.advance(61)

    decision = limiter.can_make_request()

    assert decision.allowed is False
    assert decision.reason.startswith("Daily rate limit exceeded")
    assert decision.wait_ms > 0


def test_daily_limit_message_uses_thousands_separator(clock) -> None:
    limiter = WhoopRateLimiter(daily_limit=10_000, minute_limit=10**9, clock=clock)
    limiter._daily_count = 10_000

    decision = limiter.can_make_request()

    assert decision.allowed is False
    assert decision.reason == "Daily rate limit exceeded (10,000 requests/day)"


def test_daily_counter_resets_after_midnight(clock) -> None:
    limiter = WhoopRateLimiter(daily_limit=1, minute_limit=100, clock=clock)
    limiter.record_request()
    assert limiter.can_make_request().allowed is False

    clock.advance(25 * 3600)

    assert limiter.can_make_request().allowed is True
    assert limiter.status()["per_day"]["used"] == 0


def test_reported_headers_block_until_reset(limiter, clock) -> None:
    limiter.update_rate_limits(
        {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(clock.now) + 30),
        }
    )

    decision = limiter.can_make_request()
    assert decision.allowed is False
    assert decision.reason == "API rate limit reached (from response headers)"
    assert decision.wait_ms == 30_000

    clock.advance(31)
    assert limiter.can_make_request().allowed is True


def test_partial_or_garbage_headers_are_ignored(limiter) -> None:
    limiter.update_rate_limits({"x-ratelimit-remaining": "0"})
    limiter.update_rate_limits(
        {"x-ratelimit-limit": "a", "x-ratelimit-remaining": "b", "x-ratelimit-reset": "c"}
    )

    assert limiter.status()["api_reported"] is None
    assert limiter.can_make_request().allowed is True


def test_status_reports_usage(limiter, clock) -> None:
    limiter.record_request()
    limiter.record_request()
    limiter.update_rate_limits(
        {"x-ratelimit-limit": "100", "x-ratelimit-remaining": "98", "x-ratelimit-reset": "123"}
    )

    status = limiter.status()

    assert status["per_minute"]["used"] == 2
    assert status["per_minute"]["limit"] == 100
    assert status["per_day"]["used"] == 2
    assert status["api_reported"] == {"limit": 100, "remaining": 98, "reset": 123}


def test_cache_hit_then_expiry(limiter, clock) -> None:
    limiter.cache(DataCategory.CYCLES, "p1", [{"strain": 9.1}])

    entry = limiter.get_cached(DataCategory.CYCLES, "p1")
    assert entry is not None
    assert entry.data == [{"strain": 9.1}]

    clock.advance(61)
    assert limiter.get_cached(DataCategory.CYCLES, "p1") is None


def test_heart_rate_cache_has_shorter_ttl(limiter, clock) -> None:
    limiter.cache_heart_rate("p1", 88.0)
    limiter.cache(DataCategory.SLEEP, "p1", [{"score": 1}])

    clock.advance(16)

    assert limiter.get_cached_heart_rate("p1") is None
    assert limiter.get_cached(DataCategory.SLEEP, "p1") is not None


def test_caches_are_per_patient_and_category(limiter) -> None:
    limiter.cache(DataCategory.RECOVERY, "p1", ["a"])

    assert limiter.get_cached(DataCategory.RECOVERY, "p2") is None
    assert limiter.get_cached(DataCategory.WORKOUTS, "p1") is None


def test_ttl_cache_boundary_is_inclusive(clock) -> None:
    cache = TTLCache(ttl_seconds=15, clock=clock)
    cache.put("p1", 1)

    clock.advance(15)
    assert cache.get("p1") is not None

    clock.advance(0.001)
    assert cache.get("p1") is None
    assert len(cache) == 0
