from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.permissions import require_role
from ecopower.admin.cascade import DeletionCoordinator
from ecopower.houses.models import HouseCreate, HouseUpdate
from ecopower.houses.services import HouseService, serialize_house
from ecopower.users.models import UserInDB, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/houses", tags=["houses"])

owner_only = require_role(Role.proprietaire)


def get_house_service(db: AsyncIOMotorDatabase = Depends(get_mongo_db)) -> HouseService:
    return HouseService(db)

# ─────────────────────────────────────────────
# 1. Créer une maison
# ─────────────────────────────────────────────
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_house(
    data: HouseCreate,
    current_user: UserInDB = Depends(owner_only),
    service: HouseService = Depends(get_house_service),
):
    house = await service.create(current_user, data)
    return {"message": "Maison créée avec succès", "house": serialize_house(house)}

# ─────────────────────────────────────────────
# 2. Mes maisons
# ─────────────────────────────────────────────
@router.get("")
async def list_houses(
    current_user: UserInDB = Depends(owner_only),
    service: HouseService = Depends(get_house_service),
):
    houses = await service.list_for_owner(current_user)
    return {"houses": [serialize_house(h) for h in houses]}

# ─────────────────────────────────────────────
# 3. Détail / modification
# ─────────────────────────────────────────────
@router.get("/{house_id}")
async def get_house(
    house_id: str,
    current_user: UserInDB = Depends(owner_only),
    service: HouseService = Depends(get_house_service),
):
    return {"house": serialize_house(await service.get(current_user, house_id))}


@router.put("/{house_id}")
async def update_house(
    house_id: str,
    data: HouseUpdate,
    current_user: UserInDB = Depends(owner_only),
    service: HouseService = Depends(get_house_service),
):
    house = await service.update(current_user, house_id, data)
    return {"message": "Maison mise à jour", "house": serialize_house(house)}

# ─────────────────────────────────────────────
# 4. Suppression (relevés et factures inclus)
# ─────────────────────────────────────────────
@router.delete("/{house_id}")
async def delete_house(
    house_id: str,
    current_user: UserInDB = Depends(owner_only),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    stats = await DeletionCoordinator(db).delete_house(house_id, owner_id=current_user.id)
    return {"message": "Maison supprimée", "deleted": stats}
