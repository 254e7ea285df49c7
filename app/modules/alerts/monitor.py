from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable, Protocol

import structlog

from app.modules.alerts.engine import AlertEvaluator, EnabledAlertSource
from app.modules.alerts.models import ActiveAlertRecord, AlertPriority
from app.modules.alerts.tracker import AlertStateTracker

log = structlog.get_logger()


class AlertNotifier(Protocol):
    async def dispatch(
        self, alert_id: str, patient_id: str, alert_name: str, priority: AlertPriority
    ) -> bool: ...


class AlertMonitor:
    """
    Evaluate, diff against the tracker, commit, then notify on new triggers.

    Shared by the tier scheduler and the live heart-rate path. The evaluate,
    diff and commit steps for one patient run under that patient's tracker lock;
    notifications go out after the lock is released.
    """

    def __init__(
        self,
        evaluator: AlertEvaluator,
        alerts: EnabledAlertSource,
        tracker: AlertStateTracker,
        notifier: AlertNotifier,
    ) -> None:
        self._evaluator = evaluator
        self._alerts = alerts
        self._tracker = tracker
        self._notifier = notifier

    async def run_tier(self, priority: AlertPriority) -> int:
        """One scheduler tick for a tier. Returns the number of newly triggered alerts."""
        tier_alerts = await self._alerts.list_enabled(priority=priority)
        by_patient: dict[str, list[Any]] = defaultdict(list)
        for alert in tier_alerts:
            by_patient[alert.patient_id].append(alert)

        triggered = 0
        for patient_id, alerts in by_patient.items():
            with structlog.contextvars.bound_contextvars(patient_id=patient_id):
                try:
                    triggered += await self._run_patient_tier(patient_id, priority, alerts)
                except Exception:
                    log.exception("alert tier pass failed for patient", alert_tier=priority.value)
        return triggered

    async def handle_live_reading(self, patient_id: str) -> int:
        """Out-of-cycle pass after a new reading arrives for the patient."""
        async with self._tracker.lock(patient_id):
            active = await self._evaluator.evaluate_all(patient_id)
            active_ids = {str(record.alert.id) for record in active}
            newly = self._tracker.diff(patient_id, active_ids)
            self._tracker.commit(patient_id, active_ids)
        await self._notify(patient_id, (r for r in active if str(r.alert.id) in newly))
        return len(newly)

    async def active_alerts(self, patient_id: str) -> list[ActiveAlertRecord]:
        """Fresh evaluation for on-demand views; the tracker is not touched."""
        return await self._evaluator.evaluate_all(patient_id)

    async def _run_patient_tier(
        self, patient_id: str, priority: AlertPriority, tier_alerts: list[Any]
    ) -> int:
        tier_ids = {str(alert.id) for alert in tier_alerts}
        async with self._tracker.lock(patient_id):
            active = await self._evaluator.evaluate_all(patient_id)
            tier_active = [
                record
                for record in active
                if record.alert.priority == priority and str(record.alert.id) in tier_ids
            ]
            active_ids = {str(record.alert.id) for record in tier_active}
            newly = self._tracker.diff(patient_id, active_ids)
            self._tracker.commit(patient_id, active_ids, evaluated_ids=tier_ids)

        if newly:
            log.info("alerts newly triggered", alert_tier=priority.value, alert_ids=sorted(newly))
        await self._notify(patient_id, (r for r in tier_active if str(r.alert.id) in newly))
        return len(newly)

    async def _notify(self, patient_id: str, records: Iterable[ActiveAlertRecord]) -> None:
        for record in records:
            alert = record.alert
            try:
                await self._notifier.dispatch(
                    str(alert.id), patient_id, alert.name, AlertPriority(alert.priority)
                )
            except Exception:
                log.exception(
                    "alert notification failed", alert_id=str(alert.id), patient_id=patient_id
                )
