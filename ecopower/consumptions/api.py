from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.dependencies import get_current_user
from ecopower.auth.permissions import require_role
from ecopower.consumptions.models import ConsumptionCreate, ConsumptionUpdate
from ecopower.consumptions.services import ConsumptionService
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.users.models import UserInDB, Role
from ecopower.utils.mongodb_utils import convert_mongodb_result

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consumptions", tags=["consumptions"])


def get_consumption_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> ConsumptionService:
    return ConsumptionService(db, notifications)

# ─────────────────────────────────────────────
# 1. Enregistrer un relevé
# ─────────────────────────────────────────────
@router.post("", status_code=status.HTTP_201_CREATED)
async def record_consumption(
    data: ConsumptionCreate,
    background_tasks: BackgroundTasks,
    current_user: UserInDB = Depends(require_role(Role.proprietaire, Role.resident)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    consumption = await service.record(current_user, data)
    # Notifications après la réponse : leur échec n'annule pas le relevé
    background_tasks.add_task(service.notify_recorded, consumption)
    return {"message": "Consommation enregistrée", "consumption": convert_mongodb_result(consumption)}

# ─────────────────────────────────────────────
# 2. Mes consommations et celles de ma maison (résident)
# ─────────────────────────────────────────────
@router.get("/me")
async def my_consumptions(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: UserInDB = Depends(require_role(Role.resident)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    return await service.list_mine(current_user, year, month)


@router.get("/me/house")
async def my_house_consumptions(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: UserInDB = Depends(require_role(Role.resident)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    return await service.list_my_house(current_user, year, month)

# ─────────────────────────────────────────────
# 3. Consommations d'un résident
# ─────────────────────────────────────────────
@router.get("/resident/{resident_id}")
async def resident_consumptions(
    resident_id: str,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: UserInDB = Depends(get_current_user),
    service: ConsumptionService = Depends(get_consumption_service),
):
    return await service.list_by_resident(current_user, resident_id, year, month)

# ─────────────────────────────────────────────
# 4. Consommations d'une maison
# ─────────────────────────────────────────────
@router.get("/house/{house_id}")
async def house_consumptions(
    house_id: str,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: UserInDB = Depends(require_role(Role.proprietaire, Role.admin)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    return await service.list_by_house(current_user, house_id, year, month)

# ─────────────────────────────────────────────
# 5. Corriger un relevé non facturé
# ─────────────────────────────────────────────
@router.put("/{consumption_id}")
async def update_consumption(
    consumption_id: str,
    data: ConsumptionUpdate,
    current_user: UserInDB = Depends(require_role(Role.proprietaire, Role.resident)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    consumption = await service.update(current_user, consumption_id, data)
    return {"message": "Consommation mise à jour", "consumption": convert_mongodb_result(consumption)}

# ─────────────────────────────────────────────
# 6. Supprimer un relevé non facturé
# ─────────────────────────────────────────────
@router.delete("/{consumption_id}")
async def delete_consumption(
    consumption_id: str,
    current_user: UserInDB = Depends(require_role(Role.proprietaire)),
    service: ConsumptionService = Depends(get_consumption_service),
):
    await service.delete(current_user, consumption_id)
    return {"message": "Consommation supprimée"}
