"""Medication check-ins."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from app.modules.alerts.monitor import AlertMonitor
from app.modules.alerts.service import get_alert_monitor
from app.modules.medications.schemas import CheckInCreate, CheckInRead
from app.modules.medications.service import MedicationService
from app.modules.patients.service import PatientService
from app.modules.users.models import User
from app.shared import deps

router = APIRouter()
log = structlog.get_logger()


@router.post(
    "",
    response_model=CheckInRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record a medication check-in",
)
async def record_check_in(
    payload: CheckInCreate,
    current_user: User = Depends(deps.get_current_user),
    service: MedicationService = Depends(MedicationService),
    patients: PatientService = Depends(PatientService),
    monitor: AlertMonitor = Depends(get_alert_monitor),
) -> CheckInRead:
    patient_id = await deps.resolve_patient_id(payload.patient_id, current_user, patients)
    check_in = await service.create_check_in(patient_id, payload, recorded_by=str(current_user.id))
    log.info(
        "medication check-in recorded",
        patient_id=patient_id,
        medication_id=check_in.medication_id,
        check_in_status=check_in.status.value,
    )

    # missed_dose alerts should not wait for the next tier tick
    try:
        await monitor.handle_live_reading(patient_id)
    except Exception:
        log.exception("live alert evaluation failed", patient_id=patient_id)
    return CheckInRead.model_validate(check_in)


@router.get("", response_model=List[CheckInRead], summary="List recent medication check-ins")
async def list_check_ins(
    patient_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.get_current_user),
    service: MedicationService = Depends(MedicationService),
    patients: PatientService = Depends(PatientService),
) -> List[CheckInRead]:
    resolved = await deps.resolve_patient_id(patient_id, current_user, patients)
    check_ins = await service.list_check_ins(resolved, limit=limit)
    return [CheckInRead.model_validate(check_in) for check_in in check_ins]
