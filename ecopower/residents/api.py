from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.dependencies import get_current_user
from ecopower.auth.permissions import require_role
from ecopower.admin.cascade import DeletionCoordinator
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.residents.models import ResidentCreate, ResidentUpdate
from ecopower.residents.services import ResidentService
from ecopower.users.models import UserInDB, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/residents", tags=["residents"])

owner_only = require_role(Role.proprietaire)


def get_resident_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> ResidentService:
    return ResidentService(db, notifications)

# ─────────────────────────────────────────────
# 1. Résidents de ma maison (propriétaire ou résident)
# ─────────────────────────────────────────────
@router.get("/my-house")
async def my_house_residents(
    current_user: UserInDB = Depends(get_current_user),
    service: ResidentService = Depends(get_resident_service),
):
    return {"residents": await service.my_house_residents(current_user)}

# ─────────────────────────────────────────────
# 2. Ajouter un résident
# ─────────────────────────────────────────────
@router.post("", status_code=status.HTTP_201_CREATED)
async def add_resident(
    data: ResidentCreate,
    current_user: UserInDB = Depends(owner_only),
    service: ResidentService = Depends(get_resident_service),
):
    result = await service.add(current_user, data)
    return {"message": "Résident ajouté avec succès", **result}

# ─────────────────────────────────────────────
# 3. Lister / consulter
# ─────────────────────────────────────────────
@router.get("")
async def list_residents(
    current_user: UserInDB = Depends(owner_only),
    service: ResidentService = Depends(get_resident_service),
):
    return {"residents": await service.list_for_owner(current_user)}


@router.get("/{resident_id}")
async def get_resident(
    resident_id: str,
    current_user: UserInDB = Depends(owner_only),
    service: ResidentService = Depends(get_resident_service),
):
    return {"resident": await service.get(current_user, resident_id)}

# ─────────────────────────────────────────────
# 4. Modifier / réinitialiser le mot de passe
# ─────────────────────────────────────────────
@router.put("/{resident_id}")
async def update_resident(
    resident_id: str,
    data: ResidentUpdate,
    current_user: UserInDB = Depends(owner_only),
    service: ResidentService = Depends(get_resident_service),
):
    resident = await service.update(current_user, resident_id, data)
    return {"message": "Résident mis à jour", "resident": resident}


@router.post("/{resident_id}/reset-password")
async def reset_resident_password(
    resident_id: str,
    current_user: UserInDB = Depends(owner_only),
    service: ResidentService = Depends(get_resident_service),
):
    sent = await service.reset_password(current_user, resident_id)
    return {"message": "Mot de passe réinitialisé", "credentials_sent": sent}

# ─────────────────────────────────────────────
# 5. Supprimer un résident et ses données
# ─────────────────────────────────────────────
@router.delete("/{resident_id}")
async def delete_resident(
    resident_id: str,
    current_user: UserInDB = Depends(owner_only),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    stats = await DeletionCoordinator(db).delete_resident(resident_id, owner_id=current_user.id)
    return {"message": "Résident supprimé", "deleted": stats}
