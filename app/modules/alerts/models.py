from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from beanie import Document, Insert, Replace, Save, Update, before_event
from pydantic import Field
from pymongo import IndexModel


class MetricType(str, Enum):
    WHOOP = "whoop"
    MEDICATION = "medication"


class ComparisonOperator(str, Enum):
    LT = "<"
    GT = ">"
    EQ = "="
    LTE = "<="
    GTE = ">="


class AlertPriority(str, Enum):
    HIGH = "high"
    MID = "mid"
    LOW = "low"


class Alert(Document):
    """Caregiver-defined threshold rule on one metric of one patient."""

    patient_id: str
    created_by: str
    name: str
    metric_type: MetricType
    metric_path: str
    operator: ComparisonOperator
    # Kept as entered; parsed at evaluation time.
    threshold_value: str
    priority: AlertPriority = AlertPriority.MID
    enabled: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "alerts"
        indexes = [
            IndexModel([("patient_id", 1), ("enabled", 1)]),
            IndexModel([("priority", 1), ("enabled", 1)]),
        ]

    @before_event(Insert, Replace, Save, Update)
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


@dataclass
class MetricResult:
    value: float | None
    error: str | None = None


@dataclass
class ActiveAlertRecord:
    """Outcome of one evaluation pass; never persisted."""

    alert: Any
    current_value: float
    is_active: bool
    triggered_at: datetime | None = None
    # Why the metric could not be resolved; current_value is 0 in that case.
    error: str | None = None
