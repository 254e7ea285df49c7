from datetime import datetime

from pydantic import Field, field_validator

from app.modules.medications.models import CheckInStatus
from app.shared.schemas import CamelModel, CamelReadModel


class CheckInCreate(CamelModel):
    patient_id: str | None = None
    medication_id: str = Field(..., min_length=1)
    status: CheckInStatus
    taken_at: datetime | None = None
    scheduled_for: datetime | None = None
    notes: str | None = Field(None, max_length=1000)


class CheckInRead(CamelReadModel):
    id: str
    patient_id: str
    medication_id: str
    status: CheckInStatus
    taken_at: datetime | None = None
    scheduled_for: datetime | None = None
    recorded_by: str | None = None
    notes: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> str:
        return str(value)
