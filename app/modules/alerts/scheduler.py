"""
Periodic re-evaluation of alerts, one independent loop per priority tier.

high and mid run on a fixed cadence; low fires at every local midnight and
recomputes its delay each time, so DST changes and drift do not accumulate.
Every tier fires once immediately on start.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Protocol

import structlog

from app.modules.alerts.config import AlertEngineConfig
from app.modules.alerts.models import AlertPriority
from app.shared.timeutils import next_local_midnight

log = structlog.get_logger()


class Ticker(Protocol):
    def next_delay(self) -> float: ...


class IntervalTicker:
    """Fixed-rate ticks anchored to the first call; missed ticks are not replayed."""

    def __init__(self, interval_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._next_fire: float | None = None

    def next_delay(self) -> float:
        now = self._clock()
        if self._next_fire is None:
            self._next_fire = now + self.interval_seconds
        else:
            self._next_fire += self.interval_seconds
        if self._next_fire < now:
            self._next_fire = now
        return self._next_fire - now


class DailyTicker:
    """Fires at the next local midnight."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def next_delay(self) -> float:
        now = self._clock()
        return max(0.0, next_local_midnight(now) - now)


class TierRunner(Protocol):
    async def run_tier(self, priority: AlertPriority) -> int: ...


class AlertScheduler:
    def __init__(
        self,
        runner: TierRunner,
        config: AlertEngineConfig,
        tickers: dict[AlertPriority, Ticker] | None = None,
    ) -> None:
        self._runner = runner
        self._config = config
        self._tickers = tickers
        self._stopping: asyncio.Event | None = None
        self._tasks: dict[AlertPriority, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self.running:
            return
        tickers = self._tickers or self._default_tickers()
        self._stopping = asyncio.Event()
        for priority in AlertPriority:
            self._tasks[priority] = asyncio.create_task(
                self._loop(priority, tickers[priority]),
                name=f"alert-scheduler-{priority.value}",
            )
        log.info(
            "alert scheduler started",
            high_interval_seconds=self._config.high_interval_seconds,
            mid_interval_seconds=self._config.mid_interval_seconds,
        )

    async def stop(self) -> None:
        if not self.running:
            return
        assert self._stopping is not None
        self._stopping.set()
        tasks = list(self._tasks.values())
        self._tasks = {}

        _, pending = await asyncio.wait(tasks, timeout=self._config.shutdown_grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            log.warning("alert scheduler cancelled in-flight ticks", count=len(pending))
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("alert scheduler stopped")

    async def run_once(self, priority: AlertPriority) -> None:
        """Run a single tick for a tier; failures are logged, never raised."""
        with structlog.contextvars.bound_contextvars(alert_tier=priority.value):
            try:
                triggered = await self._runner.run_tier(priority)
            except Exception:
                log.exception("alert tier tick failed")
                return
            log.debug("alert tier tick finished", triggered=triggered)

    async def _loop(self, priority: AlertPriority, ticker: Ticker) -> None:
        stopping = self._stopping
        assert stopping is not None
        await self.run_once(priority)
        while not stopping.is_set():
            try:
                await asyncio.wait_for(stopping.wait(), timeout=ticker.next_delay())
            except asyncio.TimeoutError:
                await self.run_once(priority)

    def _default_tickers(self) -> dict[AlertPriority, Ticker]:
        tickers: dict[AlertPriority, Ticker] = {}
        for priority in AlertPriority:
            interval = self._config.interval_for(priority)
            tickers[priority] = DailyTicker() if interval is None else IntervalTicker(interval)
        return tickers
