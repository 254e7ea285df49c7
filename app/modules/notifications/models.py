from datetime import datetime, timezone
from enum import Enum

from beanie import Document, Insert, Replace, Save, Update, before_event
from pydantic import Field
from pymongo import IndexModel


class DevicePlatform(str, Enum):
    IOS = "ios"
    ANDROID = "android"


class DeviceToken(Document):
    """Push token registered by one of a user's devices."""

    user_id: str
    token: str
    platform: DevicePlatform
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "device_tokens"
        indexes = [
            IndexModel([("token", 1)], unique=True),
            IndexModel([("user_id", 1)]),
        ]

    @before_event(Insert, Replace, Save, Update)
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


class NotificationPreferences(Document):
    user_id: str
    alerts_enabled: bool = True
    high_priority_enabled: bool = True
    mid_priority_enabled: bool = True
    low_priority_enabled: bool = True
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "notification_preferences"
        indexes = [IndexModel([("user_id", 1)], unique=True)]

    @before_event(Insert, Replace, Save, Update)
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
