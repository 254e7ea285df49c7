from __future__ import annotations

import time
from typing import AsyncContextManager, Callable, Iterable

from app.shared.locks import KeyedLocks


class AlertStateTracker:
    """
    Per-patient record of which alerts are active and since when.

    Only in-memory: after a restart every alert counts as inactive, and the
    first scheduler pass rebuilds the state. ``lock(patient_id)`` serialises a
    diff/commit pair for one patient across concurrently running tiers.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._active: dict[str, dict[str, float]] = {}
        self._locks = KeyedLocks()

    def lock(self, patient_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(patient_id)

    def diff(self, patient_id: str, active_ids: Iterable[str]) -> set[str]:
        """IDs active now that were not active at the last commit."""
        previous = self._active.get(patient_id, {})
        return {alert_id for alert_id in active_ids if alert_id not in previous}

    def commit(
        self,
        patient_id: str,
        active_ids: Iterable[str],
        evaluated_ids: Iterable[str] | None = None,
    ) -> None:
        """
        Store the new active set for a patient.

        With ``evaluated_ids`` only those alerts are replaced and the rest of the
        patient's entries are left alone, so one tier cannot clear another tier's
        state. Alerts that stay active keep their original timestamp.
        """
        active = set(active_ids)
        previous = self._active.get(patient_id, {})
        now = self._clock()

        if evaluated_ids is None:
            kept: dict[str, float] = {}
        else:
            scope = set(evaluated_ids) | active
            kept = {k: v for k, v in previous.items() if k not in scope}

        for alert_id in active:
            kept[alert_id] = previous.get(alert_id, now)

        if kept:
            self._active[patient_id] = kept
        else:
            self._active.pop(patient_id, None)

    def query(self, patient_id: str) -> list[str]:
        return list(self._active.get(patient_id, {}))

    def first_active_at(self, patient_id: str, alert_id: str) -> float | None:
        return self._active.get(patient_id, {}).get(alert_id)

    def forget(self, alert_id: str) -> None:
        """Drop an alert everywhere, e.g. after it was edited or deleted."""
        for patient_id in list(self._active):
            entries = self._active[patient_id]
            entries.pop(alert_id, None)
            if not entries:
                self._active.pop(patient_id, None)
