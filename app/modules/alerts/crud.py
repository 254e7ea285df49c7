from typing import List

from bson import ObjectId

from app.modules.alerts.models import Alert, AlertPriority
from app.modules.alerts.schemas import AlertCreate, AlertUpdate


class AlertCrudService:
    """Persistence for alert definitions."""

    async def list_enabled(
        self, patient_id: str | None = None, priority: AlertPriority | None = None
    ) -> List[Alert]:
        query = Alert.find(Alert.enabled == True)  # noqa: E712
        if patient_id is not None:
            query = query.find(Alert.patient_id == patient_id)
        if priority is not None:
            query = query.find(Alert.priority == priority)
        return await query.to_list()

    async def list_for_patient(self, patient_id: str) -> List[Alert]:
        return await Alert.find(Alert.patient_id == patient_id).sort("-created_at").to_list()

    async def get(self, alert_id: str) -> Alert | None:
        if not ObjectId.is_valid(alert_id):
            return None
        return await Alert.get(ObjectId(alert_id))

    async def create(self, payload: AlertCreate, patient_id: str, created_by: str) -> Alert:
        alert = Alert(
            patient_id=patient_id,
            created_by=created_by,
            name=payload.name.strip(),
            metric_type=payload.metric_type,
            metric_path=payload.metric_path.strip(),
            operator=payload.operator,
            threshold_value=payload.threshold_value.strip(),
            priority=payload.priority,
            enabled=payload.enabled,
        )
        await alert.insert()
        return alert

    async def update(self, alert: Alert, payload: AlertUpdate) -> Alert:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            if isinstance(value, str):
                value = value.strip()
            setattr(alert, field, value)
        await alert.save()
        return alert

    async def delete(self, alert: Alert) -> None:
        await alert.delete()
