from datetime import datetime

from pydantic import Field

from app.modules.notifications.models import DevicePlatform
from app.shared.schemas import CamelModel, CamelReadModel


class DeviceTokenRegister(CamelModel):
    token: str = Field(..., min_length=1)
    platform: DevicePlatform


class DeviceTokenUnregister(CamelModel):
    token: str = Field(..., min_length=1)


class DeviceTokenRead(CamelReadModel):
    token: str
    platform: DevicePlatform
    updated_at: datetime


class PreferencesRead(CamelReadModel):
    alerts_enabled: bool
    high_priority_enabled: bool
    mid_priority_enabled: bool
    low_priority_enabled: bool


class PreferencesUpdate(CamelModel):
    alerts_enabled: bool | None = None
    high_priority_enabled: bool | None = None
    mid_priority_enabled: bool | None = None
    low_priority_enabled: bool | None = None
