from datetime import datetime

from pydantic import Field, field_validator

from app.modules.alerts.models import AlertPriority, ComparisonOperator, MetricType
from app.shared.schemas import CamelModel, CamelReadModel


def _threshold_to_str(value: object) -> object:
    if isinstance(value, bool):
        raise ValueError("thresholdValue must be a number")
    if isinstance(value, (int, float)):
        return str(value)
    return value


class AlertCreate(CamelModel):
    patient_id: str | None = None
    name: str = Field(..., min_length=1, max_length=200)
    metric_type: MetricType
    metric_path: str = Field(..., min_length=1)
    operator: ComparisonOperator
    threshold_value: str = Field(..., min_length=1)
    priority: AlertPriority = AlertPriority.MID
    enabled: bool = True

    _coerce_threshold = field_validator("threshold_value", mode="before")(_threshold_to_str)


class AlertUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    metric_type: MetricType | None = None
    metric_path: str | None = Field(None, min_length=1)
    operator: ComparisonOperator | None = None
    threshold_value: str | None = Field(None, min_length=1)
    priority: AlertPriority | None = None
    enabled: bool | None = None

    _coerce_threshold = field_validator("threshold_value", mode="before")(_threshold_to_str)


class AlertRead(CamelReadModel):
    id: str
    patient_id: str
    created_by: str
    name: str
    metric_type: MetricType
    metric_path: str
    operator: ComparisonOperator
    threshold_value: str
    priority: AlertPriority
    enabled: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> str:
        return str(value)


class ActiveAlertRead(CamelModel):
    alert: AlertRead
    current_value: float
    is_active: bool
    triggered_at: datetime | None = None
    error: str | None = None
