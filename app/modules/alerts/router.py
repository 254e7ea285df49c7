"""Alert definitions and on-demand evaluation."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.modules.alerts.crud import AlertCrudService
from app.modules.alerts.models import Alert
from app.modules.alerts.monitor import AlertMonitor
from app.modules.alerts.schemas import ActiveAlertRead, AlertCreate, AlertRead, AlertUpdate
from app.modules.alerts.service import get_alert_monitor, get_alert_tracker
from app.modules.alerts.tracker import AlertStateTracker
from app.modules.patients.service import PatientService
from app.modules.users.models import User
from app.shared import deps

router = APIRouter()
log = structlog.get_logger()


async def _get_accessible_alert(
    alert_id: str, user: User, service: AlertCrudService, patients: PatientService
) -> Alert:
    alert = await service.get(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    await deps.ensure_patient_access(alert.patient_id, user, patients)
    return alert


@router.get("", response_model=List[AlertRead], summary="List alerts for a patient")
async def list_alerts(
    patient_id: Optional[str] = None,
    current_user: User = Depends(deps.get_current_user),
    service: AlertCrudService = Depends(AlertCrudService),
    patients: PatientService = Depends(PatientService),
) -> List[AlertRead]:
    resolved = await deps.resolve_patient_id(patient_id, current_user, patients)
    alerts = await service.list_for_patient(resolved)
    return [AlertRead.model_validate(alert) for alert in alerts]


@router.post(
    "",
    response_model=AlertRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an alert",
)
async def create_alert(
    payload: AlertCreate,
    current_user: User = Depends(deps.get_current_user),
    service: AlertCrudService = Depends(AlertCrudService),
    patients: PatientService = Depends(PatientService),
    tracker: AlertStateTracker = Depends(get_alert_tracker),
) -> AlertRead:
    patient_id = await deps.resolve_patient_id(payload.patient_id, current_user, patients)
    alert = await service.create(payload, patient_id=patient_id, created_by=str(current_user.id))
    tracker.forget(str(alert.id))
    log.info("alert created", alert_id=str(alert.id), patient_id=patient_id)
    return AlertRead.model_validate(alert)


@router.get(
    "/active",
    response_model=List[ActiveAlertRead],
    summary="Evaluate a patient's alerts now and return the active ones",
)
async def list_active_alerts(
    patient_id: Optional[str] = None,
    current_user: User = Depends(deps.get_current_user),
    patients: PatientService = Depends(PatientService),
    monitor: AlertMonitor = Depends(get_alert_monitor),
) -> List[ActiveAlertRead]:
    resolved = await deps.resolve_patient_id(patient_id, current_user, patients)
    records = await monitor.active_alerts(resolved)
    return [
        ActiveAlertRead(
            alert=AlertRead.model_validate(record.alert),
            current_value=record.current_value,
            is_active=record.is_active,
            triggered_at=record.triggered_at,
            error=record.error,
        )
        for record in records
    ]


@router.get("/{alert_id}", response_model=AlertRead, summary="Get an alert")
async def get_alert(
    alert_id: str,
    current_user: User = Depends(deps.get_current_user),
    service: AlertCrudService = Depends(AlertCrudService),
    patients: PatientService = Depends(PatientService),
) -> AlertRead:
    alert = await _get_accessible_alert(alert_id, current_user, service, patients)
    return AlertRead.model_validate(alert)


@router.patch("/{alert_id}", response_model=AlertRead, summary="Update an alert")
async def update_alert(
    alert_id: str,
    payload: AlertUpdate,
    current_user: User = Depends(deps.get_current_user),
    service: AlertCrudService = Depends(AlertCrudService),
    patients: PatientService = Depends(PatientService),
    tracker: AlertStateTracker = Depends(get_alert_tracker),
) -> AlertRead:
    alert = await _get_accessible_alert(alert_id, current_user, service, patients)
    alert = await service.update(alert, payload)
    tracker.forget(alert_id)
    return AlertRead.model_validate(alert)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an alert")
async def delete_alert(
    alert_id: str,
    current_user: User = Depends(deps.get_current_user),
    service: AlertCrudService = Depends(AlertCrudService),
    patients: PatientService = Depends(PatientService),
    tracker: AlertStateTracker = Depends(get_alert_tracker),
) -> None:
    alert = await _get_accessible_alert(alert_id, current_user, service, patients)
    await service.delete(alert)
    tracker.forget(alert_id)
    log.info("alert deleted", alert_id=alert_id, patient_id=alert.patient_id)
