from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import structlog

from app.modules.alerts.models import MetricResult, MetricType
from app.modules.alerts.paths import InvalidMetricPath, MetricPath, to_number
from app.modules.medications.models import CheckInStatus
from app.modules.medications.service import MedicationService
from app.modules.whoop.client import WhoopAPIError
from app.modules.whoop.gateway import WhoopGateway, WhoopQuotaExceeded
from app.modules.whoop.rate_limiter import DataCategory
from app.modules.whoop.service import WhoopConnectionNotFound, WhoopTokenService

log = structlog.get_logger()

HEART_RATE_PATHS = {"heart_rate", "heartrate"}
MISSED_DOSE_PATH = "missed_dose"

NO_CONNECTION = "No Whoop connection found for patient"

# Recovery heart rate as reported on a cycle's embedded recovery object.
CYCLE_HEART_RATE_FIELDS = (
    MetricPath.parse("recovery.score.resting_heart_rate"),
    MetricPath.parse("recovery.score.heart_rate"),
    MetricPath.parse("recovery.resting_heart_rate"),
    MetricPath.parse("recovery.heart_rate"),
)

WORKOUT_HEART_RATE_FIELDS = tuple(
    MetricPath.parse(raw)
    for raw in (
        "score.average_heart_rate",
        "score.max_heart_rate",
        "score.heart_rate",
        "heart_rate",
        "hr",
        "average_heart_rate",
        "avg_heart_rate",
        "max_heart_rate",
        "heartRate",
        "averageHeartRate",
        "maxHeartRate",
    )
)


class HeartRateReadings(Protocol):
    async def get_latest(self, patient_id: str) -> Any: ...


class MetricResolver:
    """
    Turns an alert's (metric type, path) into a number.

    Never raises: every failure comes back as ``MetricResult(None, error)``.
    """

    def __init__(
        self,
        gateway: WhoopGateway,
        tokens: WhoopTokenService,
        readings: HeartRateReadings,
        medications: MedicationService,
        heart_rate_max_age_seconds: int = 5 * 60,
        missed_dose_window_hours: int = 24,
    ) -> None:
        self._gateway = gateway
        self._limiter = gateway.limiter
        self._tokens = tokens
        self._readings = readings
        self._medications = medications
        self._heart_rate_max_age = timedelta(seconds=heart_rate_max_age_seconds)
        self._missed_dose_window = timedelta(hours=missed_dose_window_hours)

    async def resolve(self, alert: Any, patient_id: str) -> MetricResult:
        try:
            if alert.metric_type == MetricType.MEDICATION:
                return await self._resolve_medication(alert.metric_path, patient_id)
            if alert.metric_type == MetricType.WHOOP:
                return await self._resolve_whoop(alert.metric_path, patient_id)
            return MetricResult(None, f"Unknown metric type: {alert.metric_type}")
        except Exception as exc:
            log.warning(
                "metric resolution failed",
                alert_id=str(getattr(alert, "id", None)),
                patient_id=patient_id,
                error=str(exc),
            )
            return MetricResult(None, str(exc) or "Failed to resolve metric")

    # ========== Medication ==========

    async def _resolve_medication(self, path: str, patient_id: str) -> MetricResult:
        if path != MISSED_DOSE_PATH:
            return MetricResult(None, f"Unknown medication metric: {path}")
        since = datetime.now(timezone.utc) - self._missed_dose_window
        missed = await self._medications.list_recent_check_ins(
            patient_id, CheckInStatus.MISSED, since
        )
        return MetricResult(float(len(missed)))

    # ========== Whoop ==========

    async def _resolve_whoop(self, raw_path: str, patient_id: str) -> MetricResult:
        if raw_path.strip().lower() in HEART_RATE_PATHS:
            return await self._resolve_heart_rate(patient_id)

        try:
            path = MetricPath.parse(raw_path)
        except InvalidMetricPath as exc:
            return MetricResult(None, str(exc))

        try:
            token = await self._tokens.ensure_valid_access_token(patient_id)
        except WhoopConnectionNotFound:
            return MetricResult(None, NO_CONNECTION)

        try:
            return MetricResult(
                await self._resolve_vendor_path(path, patient_id, token.access_token)
            )
        except WhoopQuotaExceeded as exc:
            return MetricResult(None, exc.reason)
        except WhoopAPIError as exc:
            log.warning("whoop metric fetch failed", patient_id=patient_id, path=raw_path, error=str(exc))
            return MetricResult(None, str(exc))

    async def _resolve_vendor_path(
        self, path: MetricPath, patient_id: str, access_token: str
    ) -> float | None:
        head = path.head()

        if head == "recovery":
            inner = path.strip_prefix("recovery")
            cycles = await self._gateway.fetch(DataCategory.CYCLES, patient_id, access_token)
            value = _walk_first(cycles, inner, container="recovery")
            if value is None:
                recovery = await self._gateway.fetch(DataCategory.RECOVERY, patient_id, access_token)
                value = _walk_first(recovery, inner)
            return value

        if head == "sleep":
            sleep = await self._gateway.fetch(DataCategory.SLEEP, patient_id, access_token)
            value = _walk_first(sleep, path)
            if value is None:
                value = _walk_first(sleep, path.strip_prefix("sleep"))
            return value

        cycles = await self._gateway.fetch(DataCategory.CYCLES, patient_id, access_token)
        value = _walk_first(cycles, path)
        if value is None:
            recovery = await self._gateway.fetch(DataCategory.RECOVERY, patient_id, access_token)
            value = _walk_first(recovery, path)
        return value

    async def _resolve_heart_rate(self, patient_id: str) -> MetricResult:
        cached = to_number(self._limiter.get_cached_heart_rate(patient_id))
        if cached is not None:
            return MetricResult(cached)

        reading = await self._readings.get_latest(patient_id)
        if reading is not None and _is_recent(reading.timestamp, self._heart_rate_max_age):
            value = to_number(reading.heart_rate)
            if value is not None:
                self._limiter.cache_heart_rate(patient_id, value)
                return MetricResult(value)

        decision = self._limiter.can_make_request()
        if not decision.allowed:
            return MetricResult(None, decision.reason)

        try:
            token = await self._tokens.ensure_valid_access_token(patient_id)
        except WhoopConnectionNotFound:
            return MetricResult(None, NO_CONNECTION)

        try:
            workouts = await self._gateway.fetch(DataCategory.WORKOUTS, patient_id, token.access_token)
            value = _first_heart_rate(workouts, WORKOUT_HEART_RATE_FIELDS, scan_all=True)
            if value is None:
                cycles = await self._gateway.fetch(DataCategory.CYCLES, patient_id, token.access_token)
                value = _first_heart_rate(cycles, CYCLE_HEART_RATE_FIELDS, scan_all=False)
        except WhoopQuotaExceeded as exc:
            return MetricResult(None, exc.reason)
        except WhoopAPIError as exc:
            log.warning("whoop heart rate fetch failed", patient_id=patient_id, error=str(exc))
            return MetricResult(None, str(exc))

        if value is None:
            return MetricResult(None, "No heart rate data available")
        self._limiter.cache_heart_rate(patient_id, value)
        return MetricResult(value)


def _walk_first(records: list[Any], path: MetricPath, container: str | None = None) -> float | None:
    if not records:
        return None
    first = records[0]
    if container is not None:
        first = first.get(container) if isinstance(first, dict) else None
        if not first:
            return None
    return path.resolve_number(first)


def _first_heart_rate(
    records: list[Any], fields: tuple[MetricPath, ...], scan_all: bool
) -> float | None:
    candidates = records if scan_all else records[:1]
    for record in candidates:
        for field in fields:
            value = field.resolve_number(record)
            if value is not None and value > 0:
                return value
    return None


def _is_recent(timestamp: datetime, max_age: timedelta) -> bool:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - timestamp <= max_age
