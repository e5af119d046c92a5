from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.permissions import require_role
from ecopower.admin.cascade import DeletionCoordinator
from ecopower.admin.services import AdminService
from ecopower.invoices.services import flag_overdue_invoices
from ecopower.notifications.models import BroadcastRequest
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.users.models import UserInDB, Role
from ecopower.utils.activity import log_activity

logger = logging.getLogger(__name__)

# Toutes les routes exigent le rôle administrateur
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_role(Role.admin))])

admin_only = require_role(Role.admin)


def get_admin_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> AdminService:
    return AdminService(db, notifications)

# ─────────────────────────────────────────────
# 1. Tableau de bord
# ─────────────────────────────────────────────
@router.get("/dashboard/stats")
async def dashboard_stats(service: AdminService = Depends(get_admin_service)):
    return await service.dashboard_stats()

# ─────────────────────────────────────────────
# 2. Utilisateurs
# ─────────────────────────────────────────────
@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[Role] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_users(page, limit, role, search)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    current_user: UserInDB = Depends(admin_only),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    stats = await DeletionCoordinator(db).delete_user(user_id)
    await log_activity(db, current_user.id, "utilisateur_supprime", {"user_id": user_id, **stats})
    return {"message": "Utilisateur supprimé avec succès", "deleted": stats}


@router.delete("/residents/{resident_id}")
async def delete_resident(
    resident_id: str,
    current_user: UserInDB = Depends(admin_only),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    stats = await DeletionCoordinator(db).delete_resident(resident_id)
    await log_activity(db, current_user.id, "resident_supprime", {"resident_id": resident_id, **stats})
    return {"message": "Résident supprimé avec succès", "deleted": stats}

# ─────────────────────────────────────────────
# 3. Maisons
# ─────────────────────────────────────────────
@router.get("/houses")
async def list_houses(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_houses(page, limit)


@router.delete("/houses/{house_id}")
async def delete_house(
    house_id: str,
    current_user: UserInDB = Depends(admin_only),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    stats = await DeletionCoordinator(db).delete_house(house_id)
    await log_activity(db, current_user.id, "maison_supprimee", {"house_id": house_id, **stats})
    return {"message": "Maison supprimée avec succès", "deleted": stats}

# ─────────────────────────────────────────────
# 4. Journaux d'activité
# ─────────────────────────────────────────────
@router.get("/logs")
async def list_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_logs(page, limit, user_id, action)

# ─────────────────────────────────────────────
# 5. Tâches et diffusion
# ─────────────────────────────────────────────
@router.post("/invoices/check-overdue")
async def check_overdue(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await flag_overdue_invoices(db, notifications)


@router.post("/notifications/broadcast")
async def broadcast(data: BroadcastRequest, service: AdminService = Depends(get_admin_service)):
    result = await service.broadcast(data.message, data.role)
    return {"message": "Notification diffusée", **result}
