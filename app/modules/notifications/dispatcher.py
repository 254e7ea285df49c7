from __future__ import annotations

import time
from typing import Any, Callable, Protocol

import structlog

from app.core import cache
from app.modules.alerts.models import AlertPriority
from app.modules.notifications.push import PushTransport
from app.modules.notifications.service import NotificationService, priority_enabled

log = structlog.get_logger()

COPY: dict[str, dict[str, Any]] = {
    "sv": {
        "title": "Varning: {name}",
        "body": {
            AlertPriority.HIGH: "Hög prioritet - Varningen har aktiverats",
            AlertPriority.MID: "Medel prioritet - Varningen har aktiverats",
            AlertPriority.LOW: "Låg prioritet - Varningen har aktiverats",
        },
    },
    "en": {
        "title": "Alert: {name}",
        "body": {
            AlertPriority.HIGH: "High priority - The alert has been triggered",
            AlertPriority.MID: "Medium priority - The alert has been triggered",
            AlertPriority.LOW: "Low priority - The alert has been triggered",
        },
    },
}


def render_copy(locale: str, alert_name: str, priority: AlertPriority) -> tuple[str, str]:
    strings = COPY.get(locale) or COPY["sv"]
    return strings["title"].format(name=alert_name), strings["body"][priority]


class AlertLookup(Protocol):
    async def get(self, alert_id: str) -> Any: ...


class CooldownStore:
    """
    Last successful notification time per alert.

    Kept in-process and, when Redis is configured, mirrored there with a TTL
    equal to the window so several workers share one gate.
    """

    KEY_PREFIX = "alert-cooldown:"

    def __init__(self, window_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._sent_at: dict[str, float] = {}

    async def is_cooling_down(self, alert_id: str) -> bool:
        now = self._clock()
        last = self._sent_at.get(alert_id)
        if last is not None and now - last < self.window_seconds:
            return True
        # A missing or stale local entry defers to the shared record.
        shared = await cache.get_float(self.KEY_PREFIX + alert_id)
        return shared is not None and now - shared < self.window_seconds

    async def mark_sent(self, alert_id: str) -> None:
        now = self._clock()
        self._sent_at[alert_id] = now
        await cache.set_float(self.KEY_PREFIX + alert_id, now, self.window_seconds)


class NotificationDispatcher:
    def __init__(
        self,
        alerts: AlertLookup,
        notifications: NotificationService,
        transport: PushTransport,
        cooldown: CooldownStore,
        locale: str = "sv",
    ) -> None:
        self._alerts = alerts
        self._notifications = notifications
        self._transport = transport
        self._cooldown = cooldown
        self._locale = locale

    async def dispatch(
        self, alert_id: str, patient_id: str, alert_name: str, priority: AlertPriority
    ) -> bool:
        """Notify everyone linked to the patient. Returns True if any device got it."""
        if await self._cooldown.is_cooling_down(alert_id):
            log.debug("alert notification in cooldown", alert_id=alert_id)
            return False

        alert = await self._alerts.get(alert_id)
        if alert is None:
            log.warning("alert notification skipped, alert not found", alert_id=alert_id)
            return False

        priority = AlertPriority(priority)
        title, body = render_copy(self._locale, alert_name, priority)
        data = {
            "type": "alert",
            "alertId": alert_id,
            "patientId": patient_id,
            "priority": priority.value,
        }

        delivered = 0
        for user_id in await self._notifications.list_recipients(patient_id):
            preferences = await self._notifications.read_preferences(user_id)
            if not priority_enabled(preferences, priority):
                continue
            for token in await self._notifications.list_device_tokens(user_id):
                try:
                    ok = await self._transport.send(token, title, body, data)
                except Exception as exc:
                    log.warning("push send raised", alert_id=alert_id, user_id=user_id, error=str(exc))
                    ok = False
                if ok:
                    delivered += 1

        if delivered:
            await self._cooldown.mark_sent(alert_id)
            log.info(
                "alert notification sent",
                alert_id=alert_id,
                patient_id=patient_id,
                priority=priority.value,
                deliveries=delivered,
            )
            return True

        log.info("alert notification not delivered", alert_id=alert_id, patient_id=patient_id)
        return False
