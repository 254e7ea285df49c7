from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import structlog

from app.modules.whoop.client import WhoopClient, extract_records
from app.modules.whoop.rate_limiter import DataCategory, WhoopRateLimiter

log = structlog.get_logger()

LOOKBACK = timedelta(hours=24)


class WhoopQuotaExceeded(Exception):
    """The limiter refused a live call."""

    def __init__(self, reason: str, wait_ms: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.wait_ms = wait_ms


class WhoopGateway:
    """
    Cache-first access to vendor collections.

    Order per call: category cache, then the limiter's advisory check, then a
    live fetch. Concurrent callers asking for the same (category, patient) share
    one in-flight request, so a scheduler tick evaluating many alerts for one
    patient costs a single round trip.
    """

    def __init__(self, client: WhoopClient, limiter: WhoopRateLimiter) -> None:
        self._client = client
        self._limiter = limiter
        self._inflight: dict[tuple[DataCategory, str], asyncio.Task[list[Any]]] = {}
        self._inflight_lock = asyncio.Lock()

    @property
    def limiter(self) -> WhoopRateLimiter:
        return self._limiter

    async def fetch(
        self, category: DataCategory, patient_id: str, access_token: str
    ) -> list[Any]:
        cached = self._limiter.get_cached(category, patient_id)
        if cached is not None:
            return cached.data

        key = (category, patient_id)
        async with self._inflight_lock:
            task = self._inflight.get(key)
            if task is None:
                decision = self._limiter.can_make_request()
                if not decision.allowed:
                    log.warning(
                        "whoop quota refused",
                        category=category.value,
                        patient_id=patient_id,
                        reason=decision.reason,
                        wait_ms=decision.wait_ms,
                    )
                    raise WhoopQuotaExceeded(
                        decision.reason or "Rate limit exceeded", decision.wait_ms
                    )
                task = asyncio.create_task(
                    self._fetch_and_store(category, patient_id, access_token)
                )
                self._inflight[key] = task

        try:
            return await task
        finally:
            async with self._inflight_lock:
                if self._inflight.get(key) is task:
                    self._inflight.pop(key, None)

    async def _fetch_and_store(
        self, category: DataCategory, patient_id: str, access_token: str
    ) -> list[Any]:
        end = datetime.now(timezone.utc)
        start = end - LOOKBACK
        payload = await self._loader(category)(access_token, start, end)
        records = extract_records(payload)
        self._limiter.cache(category, patient_id, records)
        return records

    def _loader(
        self, category: DataCategory
    ) -> Callable[[str, datetime, datetime], Awaitable[Any]]:
        loaders = {
            DataCategory.CYCLES: self._client.fetch_cycles,
            DataCategory.RECOVERY: self._client.fetch_recovery,
            DataCategory.SLEEP: self._client.fetch_sleep,
            DataCategory.WORKOUTS: self._client.fetch_workouts,
        }
        try:
            return loaders[category]
        except KeyError:
            raise ValueError(f"No live endpoint for {category.value}") from None
