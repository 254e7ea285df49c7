from datetime import datetime, timezone

from beanie import Document, Insert, Replace, Save, Update, before_event
from pydantic import Field
from pymongo import IndexModel

from app.shared.constants import PatientRole


class PatientUser(Document):
    """Link between a patient record and an account (the patient or a caregiver)."""

    patient_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    role: PatientRole
    invited_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    accepted_at: datetime | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "patient_users"
        indexes = [
            IndexModel([("patient_id", 1), ("user_id", 1)], unique=True),
            IndexModel([("user_id", 1)]),
        ]

    @before_event(Insert, Replace, Save, Update)
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
