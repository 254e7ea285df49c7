from datetime import datetime, timezone
from enum import Enum

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


class CheckInStatus(str, Enum):
    """Outcome recorded for a scheduled dose."""

    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"


class MedicationCheckIn(Document):
    """One recorded outcome for a scheduled medication dose."""

    patient_id: str
    medication_id: str
    status: CheckInStatus
    taken_at: datetime | None = Field(default_factory=lambda: datetime.now(timezone.utc))
    scheduled_for: datetime | None = None
    recorded_by: str | None = None
    notes: str | None = None

    class Settings:
        name = "medication_check_ins"
        indexes = [
            IndexModel([("patient_id", 1), ("status", 1), ("taken_at", -1)]),
            IndexModel([("medication_id", 1), ("taken_at", -1)]),
        ]
