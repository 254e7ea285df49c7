"""
Quota bookkeeping and short-lived response caches for the Whoop developer API.

The limiter is advisory: `can_make_request()` tells a caller whether a live call is
likely to be accepted, and callers are expected to honour it. Nothing here blocks.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Deque, Mapping

import structlog

from app.shared.timeutils import next_local_midnight

log = structlog.get_logger()

Clock = Callable[[], float]

MINUTE_SECONDS = 60.0


class DataCategory(str, Enum):
    HEART_RATE = "heart_rate"
    CYCLES = "cycles"
    RECOVERY = "recovery"
    SLEEP = "sleep"
    WORKOUTS = "workouts"


@dataclass
class QuotaDecision:
    allowed: bool
    wait_ms: int | None = None
    reason: str | None = None


@dataclass
class RateLimitHeaders:
    """Last quota snapshot reported by the vendor."""

    limit: int
    remaining: int
    reset: int  # epoch seconds


@dataclass
class CacheEntry:
    data: Any
    cached_at: float


class TTLCache:
    """Per-patient cache invalidated purely by age."""

    def __init__(self, ttl_seconds: float, clock: Clock) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, patient_id: str) -> CacheEntry | None:
        entry = self._entries.get(patient_id)
        if entry is None:
            return None
        if self._clock() - entry.cached_at > self.ttl_seconds:
            self._entries.pop(patient_id, None)
            return None
        return entry

    def put(self, patient_id: str, data: Any) -> None:
        self._entries[patient_id] = CacheEntry(data=data, cached_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)


class WhoopRateLimiter:
    """Per-minute sliding window, calendar-day counter and vendor header tracking."""

    def __init__(
        self,
        daily_limit: int = 10_000,
        minute_limit: int = 100,
        heart_rate_ttl_seconds: float = 15,
        metric_ttl_seconds: float = 60,
        clock: Clock = time.time,
    ) -> None:
        self.daily_limit = daily_limit
        self.minute_limit = minute_limit
        self._clock = clock
        self._minute_window: Deque[float] = deque()
        self._daily_count = 0
        self._daily_reset_at = next_local_midnight(clock())
        self._reported: RateLimitHeaders | None = None
        self._caches: dict[DataCategory, TTLCache] = {
            category: TTLCache(
                heart_rate_ttl_seconds
                if category is DataCategory.HEART_RATE
                else metric_ttl_seconds,
                clock,
            )
            for category in DataCategory
        }

    # ========== Quota ==========

    def update_rate_limits(self, headers: Mapping[str, str]) -> None:
        """Capture X-RateLimit-* headers; partial or malformed sets are ignored."""
        normalized = {key.lower(): value for key, value in headers.items()}
        try:
            limit = normalized["x-ratelimit-limit"]
            remaining = normalized["x-ratelimit-remaining"]
            reset = normalized["x-ratelimit-reset"]
        except KeyError:
            return
        try:
            self._reported = RateLimitHeaders(
                limit=int(limit), remaining=int(remaining), reset=int(reset)
            )
        except ValueError:
            log.warning("whoop rate limit headers unparseable", limit=limit, remaining=remaining, reset=reset)

    def can_make_request(self) -> QuotaDecision:
        now = self._clock()
        self._roll_daily_counter(now)

        if self._daily_count >= self.daily_limit:
            return QuotaDecision(
                allowed=False,
                wait_ms=int(max(0.0, self._daily_reset_at - now) * 1000),
                reason=f"Daily rate limit exceeded ({self.daily_limit:,} requests/day)",
            )

        self._prune_minute_window(now)
        if len(self._minute_window) >= self.minute_limit:
            oldest = self._minute_window[0]
            return QuotaDecision(
                allowed=False,
                wait_ms=int(max(0.0, MINUTE_SECONDS - (now - oldest)) * 1000),
                reason=f"Per-minute rate limit exceeded ({self.minute_limit} requests/minute)",
            )

        reported = self._reported
        if reported and reported.remaining <= 0 and reported.reset > now:
            return QuotaDecision(
                allowed=False,
                wait_ms=int((reported.reset - now) * 1000),
                reason="API rate limit reached (from response headers)",
            )

        return QuotaDecision(allowed=True)

    def record_request(self) -> None:
        now = self._clock()
        self._roll_daily_counter(now)
        self._minute_window.append(now)
        self._daily_count += 1

    def status(self) -> dict[str, Any]:
        now = self._clock()
        self._roll_daily_counter(now)
        self._prune_minute_window(now)
        minute_reset = (
            max(0.0, MINUTE_SECONDS - (now - self._minute_window[0]))
            if self._minute_window
            else 0.0
        )
        return {
            "per_minute": {
                "used": len(self._minute_window),
                "limit": self.minute_limit,
                "reset_in_ms": int(minute_reset * 1000),
            },
            "per_day": {
                "used": self._daily_count,
                "limit": self.daily_limit,
                "reset_in_ms": int(max(0.0, self._daily_reset_at - now) * 1000),
            },
            "api_reported": asdict(self._reported) if self._reported else None,
        }

    # ========== Caches ==========

    def get_cached(self, category: DataCategory, patient_id: str) -> CacheEntry | None:
        return self._caches[category].get(patient_id)

    def cache(self, category: DataCategory, patient_id: str, data: Any) -> None:
        self._caches[category].put(patient_id, data)

    def cache_heart_rate(self, patient_id: str, heart_rate: float | None) -> None:
        self.cache(DataCategory.HEART_RATE, patient_id, heart_rate)

    def get_cached_heart_rate(self, patient_id: str) -> float | None:
        entry = self.get_cached(DataCategory.HEART_RATE, patient_id)
        return entry.data if entry else None

    # ========== Internal ==========

    def _prune_minute_window(self, now: float) -> None:
        cutoff = now - MINUTE_SECONDS
        while self._minute_window and self._minute_window[0] <= cutoff:
            self._minute_window.popleft()

    def _roll_daily_counter(self, now: float) -> None:
        if self._daily_reset_at <= now:
            self._daily_count = 0
            self._daily_reset_at = next_local_midnight(now)
