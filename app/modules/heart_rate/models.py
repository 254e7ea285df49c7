from datetime import datetime, timezone
from enum import Enum

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


class HeartRateSource(str, Enum):
    BLUETOOTH = "bluetooth"
    API = "api"


class HeartRateReading(Document):
    """One heart-rate sample for a patient."""

    patient_id: str
    heart_rate: float
    source: HeartRateSource = HeartRateSource.BLUETOOTH
    recorded_by: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "heart_rate_readings"
        indexes = [IndexModel([("patient_id", 1), ("timestamp", -1)])]
