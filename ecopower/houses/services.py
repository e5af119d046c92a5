import logging
from datetime import datetime
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.config import settings
from ecopower.db.mongo import HOUSES
from ecopower.houses.models import HouseCreate, HouseUpdate
from ecopower.auth.permissions import AccessPolicy
from ecopower.users.models import UserInDB
from ecopower.utils.mongodb_utils import convert_mongodb_result, to_object_id

logger = logging.getLogger(__name__)


def effective_tariff(house: Dict[str, Any] | None) -> float:
    """Tarif kWh de la maison, tarif par défaut si absent ou invalide"""
    tariff = (house or {}).get("tariff_kwh")
    if isinstance(tariff, (int, float)) and not isinstance(tariff, bool) and tariff > 0:
        return float(tariff)
    return settings.DEFAULT_TARIFF_KWH


def serialize_house(house: Dict[str, Any]) -> Dict[str, Any]:
    data = convert_mongodb_result(house)
    data["resident_count"] = len(house.get("residents", []))
    return data


class HouseService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.policy = AccessPolicy(db)

    async def create(self, owner: UserInDB, data: HouseCreate) -> Dict[str, Any]:
        now = datetime.utcnow()
        house = {
            "name": data.name.strip(),
            "address": data.address,
            "owner_id": to_object_id(owner.id),
            "tariff_kwh": data.tariff_kwh or settings.DEFAULT_TARIFF_KWH,
            "residents": [],
            "created_at": now,
            "updated_at": now,
        }
        result = await self.db[HOUSES].insert_one(house)
        house["_id"] = result.inserted_id
        logger.info(f"Maison créée : id={result.inserted_id} par propriétaire {owner.id}")
        return house

    async def list_for_owner(self, owner: UserInDB) -> List[Dict[str, Any]]:
        cursor = self.db[HOUSES].find({"owner_id": to_object_id(owner.id)}).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def get(self, caller: UserInDB, house_id: str) -> Dict[str, Any]:
        return await self.policy.house_for(caller, house_id)

    async def update(self, caller: UserInDB, house_id: str, data: HouseUpdate) -> Dict[str, Any]:
        house = await self.policy.house_for(caller, house_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            return house

        update_data["updated_at"] = datetime.utcnow()
        await self.db[HOUSES].update_one({"_id": house["_id"]}, {"$set": update_data})
        if "tariff_kwh" in update_data:
            # Les factures futures utiliseront ce tarif, les relevés existants gardent leur montant
            logger.info(f"Tarif de la maison {house['_id']} : {house.get('tariff_kwh')} → {update_data['tariff_kwh']}")
        return await self.db[HOUSES].find_one({"_id": house["_id"]})
