from typing import List

import structlog

from app.modules.alerts.models import AlertPriority
from app.modules.notifications.models import DevicePlatform, DeviceToken, NotificationPreferences
from app.modules.notifications.schemas import PreferencesUpdate
from app.modules.patients.service import PatientService

log = structlog.get_logger()


def priority_enabled(preferences: NotificationPreferences, priority: AlertPriority) -> bool:
    """The master switch gates every tier; each tier then has its own flag."""
    if not preferences.alerts_enabled:
        return False
    if priority is AlertPriority.HIGH:
        return preferences.high_priority_enabled
    if priority is AlertPriority.MID:
        return preferences.mid_priority_enabled
    return preferences.low_priority_enabled


class NotificationService:
    """Recipients, preferences and device tokens."""

    def __init__(self) -> None:
        self._patients = PatientService()

    async def list_recipients(self, patient_id: str) -> List[str]:
        return await self._patients.list_user_ids(patient_id)

    async def read_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences, or unsaved defaults."""
        preferences = await NotificationPreferences.find_one(
            NotificationPreferences.user_id == user_id
        )
        return preferences or NotificationPreferences(user_id=user_id)

    async def get_or_create_preferences(self, user_id: str) -> NotificationPreferences:
        preferences = await NotificationPreferences.find_one(
            NotificationPreferences.user_id == user_id
        )
        if preferences is None:
            preferences = NotificationPreferences(user_id=user_id)
            await preferences.insert()
        return preferences

    async def update_preferences(
        self, user_id: str, payload: PreferencesUpdate
    ) -> NotificationPreferences:
        preferences = await self.get_or_create_preferences(user_id)
        for field, value in payload.model_dump(exclude_none=True).items():
            setattr(preferences, field, value)
        await preferences.save()
        return preferences

    async def list_device_tokens(self, user_id: str) -> List[str]:
        tokens = await DeviceToken.find(DeviceToken.user_id == user_id).to_list()
        return [token.token for token in tokens]

    async def register_device_token(
        self, user_id: str, token: str, platform: DevicePlatform
    ) -> DeviceToken:
        # A token belongs to one device; re-registration moves it to the caller.
        existing = await DeviceToken.find_one(DeviceToken.token == token)
        if existing is not None:
            existing.user_id = user_id
            existing.platform = platform
            await existing.save()
            return existing
        device = DeviceToken(user_id=user_id, token=token, platform=platform)
        await device.insert()
        return device

    async def unregister_device_token(self, user_id: str, token: str) -> bool:
        device = await DeviceToken.find_one(
            DeviceToken.user_id == user_id, DeviceToken.token == token
        )
        if device is None:
            return False
        await device.delete()
        return True

    async def remove_device_token(self, token: str) -> None:
        device = await DeviceToken.find_one(DeviceToken.token == token)
        if device is not None:
            await device.delete()
            log.info("device token removed", user_id=device.user_id)
