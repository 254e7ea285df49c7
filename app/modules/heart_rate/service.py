from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Protocol

import structlog
from fastapi import WebSocket

from app.modules.heart_rate.models import HeartRateReading
from app.modules.heart_rate.schemas import HeartRateCreate
from app.modules.whoop.rate_limiter import WhoopRateLimiter
from app.shared.timeutils import ensure_utc

log = structlog.get_logger()


class HeartRateService:
    """Persistence for heart-rate readings."""

    async def create(
        self, patient_id: str, payload: HeartRateCreate, recorded_by: str | None = None
    ) -> HeartRateReading:
        reading = HeartRateReading(
            patient_id=patient_id,
            heart_rate=payload.heart_rate,
            source=payload.source,
            recorded_by=recorded_by,
            timestamp=ensure_utc(payload.timestamp or datetime.now(timezone.utc)),
        )
        await reading.insert()
        return reading

    async def get_latest(self, patient_id: str) -> HeartRateReading | None:
        return (
            await HeartRateReading.find(HeartRateReading.patient_id == patient_id)
            .sort("-timestamp")
            .first_or_none()
        )


class HeartRateConnectionManager:
    """Live heart-rate subscribers keyed by patient."""

    def __init__(self) -> None:
        self._connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, patient_id: str) -> None:
        await websocket.accept()
        self._connections.setdefault(patient_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        for patient_id, sockets in list(self._connections.items()):
            if websocket in sockets:
                sockets.remove(websocket)
            if not sockets:
                self._connections.pop(patient_id, None)

    def subscriber_count(self, patient_id: str) -> int:
        return len(self._connections.get(patient_id, []))

    async def broadcast(self, reading: HeartRateReading) -> int:
        """Best effort; dead sockets are dropped. Returns how many got the message."""
        message = json.dumps(
            {
                "type": "heart_rate",
                "patientId": reading.patient_id,
                "heartRate": reading.heart_rate,
                "source": reading.source.value,
                "timestamp": ensure_utc(reading.timestamp).isoformat(),
            }
        )
        sent = 0
        for socket in list(self._connections.get(reading.patient_id, [])):
            try:
                await socket.send_text(message)
                sent += 1
            except Exception:
                self.disconnect(socket)
        return sent


class LiveReadingHandler(Protocol):
    async def handle_live_reading(self, patient_id: str) -> int: ...


class HeartRateIngestor:
    """Store a reading, prime the heart-rate cache, fan it out, then re-check alerts."""

    def __init__(
        self,
        readings: HeartRateService,
        limiter: WhoopRateLimiter,
        manager: HeartRateConnectionManager,
        monitor: LiveReadingHandler,
    ) -> None:
        self._readings = readings
        self._limiter = limiter
        self._manager = manager
        self._monitor = monitor

    async def ingest(
        self, patient_id: str, payload: HeartRateCreate, recorded_by: str | None = None
    ) -> tuple[HeartRateReading, int]:
        reading = await self._readings.create(patient_id, payload, recorded_by)
        self._limiter.cache_heart_rate(patient_id, reading.heart_rate)
        await self._manager.broadcast(reading)

        try:
            triggered = await self._monitor.handle_live_reading(patient_id)
        except Exception:
            log.exception("live alert evaluation failed", patient_id=patient_id)
            triggered = 0
        return reading, triggered
