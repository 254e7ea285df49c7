"""Heart-rate ingestion, latest reading and live stream."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from app.core import security
from app.modules.alerts.service import get_heart_rate_ingestor, get_heart_rate_manager
from app.modules.heart_rate.schemas import HeartRateCreate, HeartRateIngestResult, HeartRateRead
from app.modules.heart_rate.service import (
    HeartRateConnectionManager,
    HeartRateIngestor,
    HeartRateService,
)
from app.modules.patients.service import NoPatientContext, PatientService
from app.modules.users.models import User
from app.shared import deps
from app.shared.constants import PatientRole, UserStatus

router = APIRouter()
log = structlog.get_logger()


@router.post(
    "",
    response_model=HeartRateIngestResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record a heart-rate reading for the caller's patient record",
)
async def record_heart_rate(
    payload: HeartRateCreate,
    current_user: User = Depends(deps.get_current_user),
    patients: PatientService = Depends(PatientService),
    ingestor: HeartRateIngestor = Depends(get_heart_rate_ingestor),
) -> HeartRateIngestResult:
    try:
        context = await patients.get_context(str(current_user.id))
    except NoPatientContext:
        raise HTTPException(status_code=404, detail=deps.NO_PATIENT_DETAIL) from None
    if context.role != PatientRole.PATIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the patient can record heart-rate readings",
        )

    reading, triggered = await ingestor.ingest(
        context.patient_id, payload, recorded_by=str(current_user.id)
    )
    return HeartRateIngestResult(
        reading=HeartRateRead.model_validate(reading), newly_triggered=triggered
    )


@router.get("/latest", response_model=Optional[HeartRateRead], summary="Latest heart-rate reading")
async def latest_heart_rate(
    patient_id: Optional[str] = None,
    current_user: User = Depends(deps.get_current_user),
    patients: PatientService = Depends(PatientService),
    service: HeartRateService = Depends(HeartRateService),
) -> Optional[HeartRateRead]:
    resolved = await deps.resolve_patient_id(patient_id, current_user, patients)
    reading = await service.get_latest(resolved)
    return HeartRateRead.model_validate(reading) if reading else None


async def _authenticate_stream(websocket: WebSocket, token: str) -> Optional[User]:
    try:
        subject = security.decode_subject(token)
    except security.InvalidTokenError as exc:
        log.warning("heart rate websocket auth failed", reason="jwt_decode", error=str(exc))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    user = await User.get(subject)
    if not user or user.status != UserStatus.ACTIVE:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    return user


@router.websocket("/ws")
async def heart_rate_stream(
    websocket: WebSocket,
    token: str,
    patient_id: str,
    patients: PatientService = Depends(PatientService),
    manager: HeartRateConnectionManager = Depends(get_heart_rate_manager),
) -> None:
    """Push every new reading of `patient_id` to the caller; auth via `token` query param."""
    user = await _authenticate_stream(websocket, token)
    if not user:
        return
    if not await patients.has_access(user, patient_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, patient_id)
    log.info("heart rate websocket connected", user_id=str(user.id), patient_id=patient_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
        log.info("heart rate websocket disconnected", user_id=str(user.id), patient_id=patient_id)
