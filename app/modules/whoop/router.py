from typing import Optional

from fastapi import APIRouter, Depends

from app.modules.alerts.service import get_whoop_limiter, get_whoop_tokens
from app.modules.patients.service import PatientService
from app.modules.users.models import User
from app.modules.whoop.rate_limiter import WhoopRateLimiter
from app.modules.whoop.schemas import ConnectionStatusRead, RateLimitStatusRead
from app.modules.whoop.service import WhoopTokenService
from app.shared import deps

router = APIRouter()


@router.get("/rate-limit", response_model=RateLimitStatusRead, summary="Whoop API quota usage")
async def rate_limit_status(
    current_user: User = Depends(deps.get_current_user),
    limiter: WhoopRateLimiter = Depends(get_whoop_limiter),
) -> RateLimitStatusRead:
    return RateLimitStatusRead.model_validate(limiter.status())


@router.get("/status", response_model=ConnectionStatusRead, summary="Whoop connection for a patient")
async def connection_status(
    patient_id: Optional[str] = None,
    current_user: User = Depends(deps.get_current_user),
    patients: PatientService = Depends(PatientService),
    tokens: WhoopTokenService = Depends(get_whoop_tokens),
) -> ConnectionStatusRead:
    resolved = await deps.resolve_patient_id(patient_id, current_user, patients)
    connection = await tokens.get_connection(resolved)
    if connection is None:
        return ConnectionStatusRead(patient_id=resolved, connected=False)
    return ConnectionStatusRead(
        patient_id=resolved,
        connected=True,
        whoop_user_id=connection.whoop_user_id,
        scope=connection.scope,
        expires_at=connection.expires_at,
        last_synced_at=connection.last_synced_at,
    )
