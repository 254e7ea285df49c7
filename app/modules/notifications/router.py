from fastapi import APIRouter, Depends, HTTPException, status

from app.modules.notifications.schemas import (
    DeviceTokenRead,
    DeviceTokenRegister,
    DeviceTokenUnregister,
    PreferencesRead,
    PreferencesUpdate,
)
from app.modules.notifications.service import NotificationService
from app.modules.users.models import User
from app.shared import deps

router = APIRouter()


@router.post(
    "/tokens",
    response_model=DeviceTokenRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a device push token",
)
async def register_token(
    payload: DeviceTokenRegister,
    current_user: User = Depends(deps.get_current_user),
    service: NotificationService = Depends(NotificationService),
) -> DeviceTokenRead:
    device = await service.register_device_token(
        str(current_user.id), payload.token.strip(), payload.platform
    )
    return DeviceTokenRead.model_validate(device)


@router.delete(
    "/tokens",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unregister a device push token",
)
async def unregister_token(
    payload: DeviceTokenUnregister,
    current_user: User = Depends(deps.get_current_user),
    service: NotificationService = Depends(NotificationService),
) -> None:
    removed = await service.unregister_device_token(str(current_user.id), payload.token.strip())
    if not removed:
        raise HTTPException(status_code=404, detail="Device token not found")


@router.get("/preferences", response_model=PreferencesRead, summary="Get notification preferences")
async def get_preferences(
    current_user: User = Depends(deps.get_current_user),
    service: NotificationService = Depends(NotificationService),
) -> PreferencesRead:
    preferences = await service.get_or_create_preferences(str(current_user.id))
    return PreferencesRead.model_validate(preferences)


@router.put("/preferences", response_model=PreferencesRead, summary="Update notification preferences")
async def update_preferences(
    payload: PreferencesUpdate,
    current_user: User = Depends(deps.get_current_user),
    service: NotificationService = Depends(NotificationService),
) -> PreferencesRead:
    preferences = await service.update_preferences(str(current_user.id), payload)
    return PreferencesRead.model_validate(preferences)
