from fastapi import APIRouter, Depends, Query
from typing import Optional

from ecopower.auth.dependencies import get_current_user
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.users.models import UserInDB

router = APIRouter(prefix="/notifications", tags=["notifications"])

# ─────────────────────────────────────────────
# 1. Mes notifications
# ─────────────────────────────────────────────
@router.get("")
async def my_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: UserInDB = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return {"notifications": await service.list_for_user(current_user.id, unread_only, limit)}

# ─────────────────────────────────────────────
# 2. Marquer comme lue(s)
# ─────────────────────────────────────────────
@router.put("/read")
async def mark_all_read(
    current_user: UserInDB = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_read(current_user.id)
    return {"message": "Notifications marquées comme lues", "updated": updated}


@router.put("/{notification_id}/read")
async def mark_one_read(
    notification_id: str,
    current_user: UserInDB = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_read(current_user.id, notification_id)
    return {"message": "Notification marquée comme lue", "updated": updated}
