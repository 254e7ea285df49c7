from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import structlog

from app.modules.alerts.decision import DEFAULT_EPSILON, compare_values
from app.modules.alerts.metrics import MetricResolver
from app.modules.alerts.models import ActiveAlertRecord, AlertPriority
from app.modules.alerts.paths import to_number

log = structlog.get_logger()


class EnabledAlertSource(Protocol):
    async def list_enabled(
        self, patient_id: str | None = None, priority: AlertPriority | None = None
    ) -> list[Any]: ...


class AlertEvaluator:
    """Resolve each alert's metric and compare it with the alert's threshold."""

    def __init__(
        self,
        resolver: MetricResolver,
        alerts: EnabledAlertSource,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        self._resolver = resolver
        self._alerts = alerts
        self._epsilon = epsilon

    async def evaluate(self, alert: Any, patient_id: str) -> ActiveAlertRecord:
        result = await self._resolver.resolve(alert, patient_id)
        value = to_number(result.value)
        is_active = compare_values(
            value, alert.operator, alert.threshold_value, self._epsilon
        )
        return ActiveAlertRecord(
            alert=alert,
            current_value=value if value is not None else 0,
            is_active=is_active,
            triggered_at=datetime.now(timezone.utc) if is_active else None,
            error=result.error,
        )

    async def evaluate_many(
        self, alerts: Sequence[Any], patient_id: str
    ) -> list[ActiveAlertRecord]:
        """Evaluate concurrently; a failing alert becomes an inactive zero record."""
        outcomes = await asyncio.gather(
            *(self.evaluate(alert, patient_id) for alert in alerts),
            return_exceptions=True,
        )
        records: list[ActiveAlertRecord] = []
        for alert, outcome in zip(alerts, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                log.error(
                    "alert evaluation failed",
                    alert_id=str(alert.id),
                    patient_id=patient_id,
                    error=repr(outcome),
                )
                records.append(
                    ActiveAlertRecord(
                        alert=alert, current_value=0, is_active=False, error=str(outcome)
                    )
                )
            else:
                records.append(outcome)
        return records

    async def evaluate_all(self, patient_id: str) -> list[ActiveAlertRecord]:
        """Active records among all of the patient's enabled alerts."""
        alerts = await self._alerts.list_enabled(patient_id=patient_id)
        records = await self.evaluate_many(alerts, patient_id)
        return [record for record in records if record.is_active]
