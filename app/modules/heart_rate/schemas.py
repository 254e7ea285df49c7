from datetime import datetime

from pydantic import Field

from app.modules.heart_rate.models import HeartRateSource
from app.shared.schemas import CamelModel, CamelReadModel


class HeartRateCreate(CamelModel):
    heart_rate: float = Field(..., gt=0, le=300)
    source: HeartRateSource = HeartRateSource.BLUETOOTH
    timestamp: datetime | None = None


class HeartRateRead(CamelReadModel):
    patient_id: str
    heart_rate: float
    source: HeartRateSource
    timestamp: datetime


class HeartRateIngestResult(CamelModel):
    reading: HeartRateRead
    newly_triggered: int
