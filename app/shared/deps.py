from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core import security
from app.core.config import settings
from app.modules.patients.service import NoPatientContext, PatientService
from app.modules.users.models import User
from app.shared.constants import UserStatus

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/login/access-token",
    auto_error=False,
)

NO_PATIENT_DETAIL = {
    "error": "No patient is linked to this account. Add a patient first.",
    "code": "NO_PATIENT",
}


async def get_current_user(token: str | None = Depends(reusable_oauth2)) -> User:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        subject = security.decode_subject(token)
    except security.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        ) from None

    user: User | None = await User.get(subject)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=400, detail="Inactive user")
    return user


async def resolve_patient_id(
    patient_id: str | None, user: User, patients: PatientService
) -> str:
    """
    Use the explicit patient when given (after an access check), otherwise fall back
    to the patient the caller is linked to.
    """
    if patient_id:
        await ensure_patient_access(patient_id, user, patients)
        return patient_id
    try:
        context = await patients.get_context(str(user.id))
    except NoPatientContext:
        raise HTTPException(status_code=404, detail=NO_PATIENT_DETAIL) from None
    return context.patient_id


async def ensure_patient_access(
    patient_id: str, user: User, patients: PatientService
) -> None:
    if not await patients.has_access(user, patient_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this patient",
        )
