"""
Notification Settings Routes
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from brandlens.api.dependencies import get_owner_id, get_store
from brandlens.schemas import NotificationSettingsResponse, NotificationSettingsUpdate
from brandlens.services.store import Store

router = APIRouter()


@router.get("/notifications", response_model=NotificationSettingsResponse)
async def get_notification_settings(
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Stored settings, or the defaults when none are saved"""
    return await store.get_notification_settings(owner_id)


@router.put("/notifications", response_model=NotificationSettingsResponse)
async def update_notification_settings(
    data: NotificationSettingsUpdate,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    setting = await store.update_notification_settings(owner_id, data.model_dump(exclude_unset=True, exclude_none=True))
    await store.commit()
    return setting
