import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ecopower.config import settings
from ecopower.db.mongo import CONSUMPTIONS, HOUSES, READING_QUOTAS, USERS
from ecopower.auth.permissions import AccessPolicy
from ecopower.consumptions.models import ConsumptionCreate, ConsumptionUpdate, ConsumptionStatus
from ecopower.houses.services import effective_tariff
from ecopower.notifications.services import NotificationService
from ecopower.users.models import UserInDB, Role
from ecopower.utils.activity import log_activity
from ecopower.utils.mongodb_utils import convert_mongodb_result, convert_mongodb_results, to_object_id
from ecopower import errors

logger = logging.getLogger(__name__)

# Relevés pris en compte pour la moyenne de comparaison
HISTORY_WINDOW = 3
SORT_LATEST = [("year", -1), ("month", -1), ("reading_date", -1)]


def compute_kwh(previous_index: float, current_index: float) -> float:
    kwh = current_index - previous_index
    if kwh < 0:
        raise errors.ValidationError("L'index actuel doit être ≥ à l'ancien index")
    return kwh


def compute_amount(kwh: float, tariff: float) -> float:
    # Montant exact ; seul le montant de la facture est arrondi
    return kwh * tariff


def summarize(consumptions: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_kwh = sum(c.get("kwh", 0) for c in consumptions)
    total_amount = sum(c.get("amount", 0) for c in consumptions)
    return {
        "total_kwh": total_kwh,
        "total_amount": round(total_amount, 2),
        "average_kwh": total_kwh / len(consumptions) if consumptions else 0,
        "reading_count": len(consumptions),
    }


def quota_key(resident_id: ObjectId, house_id: ObjectId, month: int, year: int) -> str:
    return f"{resident_id}:{house_id}:{year}:{month:02d}"


class ConsumptionService:
    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService):
        self.db = db
        self.notifications = notifications
        self.policy = AccessPolicy(db)

    # ──────────────── Quota mensuel ────────────────

    async def _reserve_slot(self, resident_id: ObjectId, house_id: ObjectId, month: int, year: int) -> str:
        """
        Réserve atomiquement un relevé sur le quota mensuel.

        Le compteur n'est incrémenté que s'il est sous la limite : deux requêtes
        concurrentes ne peuvent pas dépasser le quota.
        """
        key = quota_key(resident_id, house_id, month, year)
        try:
            await self.db[READING_QUOTAS].update_one(
                {"_id": key},
                {"$setOnInsert": {
                    "resident_id": resident_id,
                    "house_id": house_id,
                    "month": month,
                    "year": year,
                    "count": 0,
                }},
                upsert=True,
            )
        except DuplicateKeyError:
            pass  # créé en parallèle par une autre requête

        slot = await self.db[READING_QUOTAS].find_one_and_update(
            {"_id": key, "count": {"$lt": settings.MAX_READINGS_PER_MONTH}},
            {"$inc": {"count": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if slot is None:
            raise errors.ConflictError(
                f"Limite atteinte : maximum {settings.MAX_READINGS_PER_MONTH} relevés par mois pour ce résident",
                {"count": settings.MAX_READINGS_PER_MONTH},
            )
        return key

    async def _release_slot(self, key: str) -> None:
        await self.db[READING_QUOTAS].update_one(
            {"_id": key, "count": {"$gt": 0}}, {"$inc": {"count": -1}}
        )

    # ──────────────── Enregistrement ────────────────

    async def record(self, caller: UserInDB, data: ConsumptionCreate) -> Dict[str, Any]:
        if caller.role == Role.resident and data.resident_id != caller.id:
            raise errors.AuthorizationError("Vous ne pouvez enregistrer que votre propre consommation")

        resident = await self.policy.resident_for(caller, data.resident_id)
        house = await self.policy.house_for(caller, data.house_id)
        if caller.role == Role.resident and resident["_id"] not in house.get("residents", []):
            raise errors.NotFoundError("Maison non trouvée")

        kwh = compute_kwh(data.previous_index, data.current_index)
        tariff = effective_tariff(house)

        key = await self._reserve_slot(resident["_id"], house["_id"], data.month, data.year)
        now = datetime.utcnow()
        consumption = {
            "resident_id": resident["_id"],
            "house_id": house["_id"],
            "previous_index": data.previous_index,
            "current_index": data.current_index,
            "month": data.month,
            "year": data.year,
            "comment": data.comment,
            "kwh": kwh,
            "amount": compute_amount(kwh, tariff),
            "tariff_kwh": tariff,
            "status": ConsumptionStatus.unbilled.value,
            "invoice_id": None,
            # Date exacte du relevé : distingue deux relevés du même mois
            "reading_date": now,
            "created_at": now,
        }
        try:
            result = await self.db[CONSUMPTIONS].insert_one(consumption)
        except Exception:
            await self._release_slot(key)
            raise
        consumption["_id"] = result.inserted_id

        logger.info(
            f"Relevé enregistré : resident={resident['_id']} {data.month:02d}/{data.year} "
            f"{kwh} kWh → {consumption['amount']:.2f}"
        )
        await log_activity(self.db, caller.id, "releve_enregistre", {"consumption_id": str(result.inserted_id)})
        return consumption

    async def notify_recorded(self, consumption: Dict[str, Any]) -> None:
        """Tâche de fond : informe le résident puis vérifie une consommation inhabituelle"""
        await self.notifications.notify_new_reading(consumption)
        await self.alert_if_unusual(consumption)

    async def alert_if_unusual(self, consumption: Dict[str, Any]) -> Optional[float]:
        """
        Compare le relevé à la moyenne des 3 relevés précédents du résident.

        Retourne la moyenne si une alerte a été émise. Ne lève jamais.
        """
        try:
            cursor = self.db[CONSUMPTIONS].find({
                "resident_id": consumption["resident_id"],
                "_id": {"$ne": consumption["_id"]},
            }).sort(SORT_LATEST).limit(HISTORY_WINDOW)
            previous = await cursor.to_list(length=HISTORY_WINDOW)
            if not previous:
                return None

            average = sum(c["kwh"] for c in previous) / len(previous)
            if consumption["kwh"] <= average:
                return None

            await self.notifications.notify_high_consumption(consumption["resident_id"], consumption["kwh"], average)
            return average
        except Exception as e:
            logger.error(f"Vérification de consommation inhabituelle échouée : {e}")
            return None

    # ──────────────── Lecture ────────────────

    @staticmethod
    def _period_query(query: Dict[str, Any], year: Optional[int], month: Optional[int]) -> Dict[str, Any]:
        if year:
            query["year"] = year
        if month:
            query["month"] = month
        return query

    async def list_by_resident(self, caller: UserInDB, resident_id: str,
                               year: Optional[int] = None, month: Optional[int] = None) -> Dict[str, Any]:
        resident = await self.policy.resident_for(caller, resident_id)
        query = self._period_query({"resident_id": resident["_id"]}, year, month)
        consumptions = await self.db[CONSUMPTIONS].find(query).sort(SORT_LATEST).to_list(length=None)
        return {
            "consumptions": convert_mongodb_results(consumptions),
            "statistics": summarize(consumptions),
        }

    async def list_mine(self, caller: UserInDB, year: Optional[int] = None, month: Optional[int] = None) -> Dict[str, Any]:
        if caller.role != Role.resident:
            raise errors.AuthorizationError("Accès non autorisé - Résident requis")
        return await self.list_by_resident(caller, caller.id, year, month)

    async def list_by_house(self, caller: UserInDB, house_id: Any,
                            year: Optional[int] = None, month: Optional[int] = None) -> Dict[str, Any]:
        house = await self.policy.house_for(caller, house_id)
        query = self._period_query({"house_id": house["_id"]}, year, month)
        consumptions = await self.db[CONSUMPTIONS].find(query).sort(SORT_LATEST).to_list(length=None)

        resident_ids = list({c["resident_id"] for c in consumptions})
        residents = {
            r["_id"]: r
            async for r in self.db[USERS].find(
                {"_id": {"$in": resident_ids}}, {"first_name": 1, "last_name": 1, "email": 1}
            )
        }

        per_resident: Dict[ObjectId, List[Dict[str, Any]]] = {}
        for consumption in consumptions:
            per_resident.setdefault(consumption["resident_id"], []).append(consumption)

        statistics = []
        for rid, items in per_resident.items():
            # Résident supprimé entre-temps : statistiques conservées sans fiche
            resident = residents.get(rid)
            statistics.append({
                "resident_id": str(rid),
                "resident": convert_mongodb_result(resident) if resident else None,
                **summarize(items),
            })

        return {
            "consumptions": convert_mongodb_results(consumptions),
            "statistics_by_resident": statistics,
            "house": {"_id": str(house["_id"]), "name": house.get("name")},
        }

    async def list_my_house(self, caller: UserInDB, year: Optional[int] = None,
                            month: Optional[int] = None) -> Dict[str, Any]:
        if caller.role != Role.resident:
            raise errors.AuthorizationError("Accès non autorisé - Résident requis")
        house = await self.db[HOUSES].find_one({"residents": to_object_id(caller.id)})
        if not house:
            raise errors.NotFoundError("Aucune maison trouvée pour ce résident")
        return await self.list_by_house(caller, house["_id"], year, month)

    # ──────────────── Modification ────────────────

    async def _load(self, consumption_id: str) -> Dict[str, Any]:
        consumption = await self.db[CONSUMPTIONS].find_one(
            {"_id": to_object_id(consumption_id, "Identifiant de la consommation")}
        )
        if not consumption:
            raise errors.NotFoundError("Consommation non trouvée")
        return consumption

    async def update(self, caller: UserInDB, consumption_id: str, data: ConsumptionUpdate) -> Dict[str, Any]:
        consumption = await self._load(consumption_id)
        await self._check_write_access(caller, consumption)
        if consumption["status"] == ConsumptionStatus.billed.value:
            raise errors.ConflictError("Impossible de modifier une consommation facturée")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        previous_index = changes.get("previous_index", consumption["previous_index"])
        current_index = changes.get("current_index", consumption["current_index"])
        kwh = compute_kwh(previous_index, current_index)

        house = await self.db[HOUSES].find_one({"_id": consumption["house_id"]})
        tariff = effective_tariff(house)
        changes.update({"kwh": kwh, "amount": compute_amount(kwh, tariff), "tariff_kwh": tariff})

        # Le filtre sur le statut empêche de modifier un relevé facturé entre-temps
        updated = await self.db[CONSUMPTIONS].find_one_and_update(
            {"_id": consumption["_id"], "status": ConsumptionStatus.unbilled.value},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise errors.ConflictError("Impossible de modifier une consommation facturée")
        return updated

    async def delete(self, caller: UserInDB, consumption_id: str) -> None:
        if caller.role != Role.proprietaire:
            raise errors.AuthorizationError("Accès non autorisé")

        consumption = await self._load(consumption_id)
        await self._check_write_access(caller, consumption)

        result = await self.db[CONSUMPTIONS].delete_one(
            {"_id": consumption["_id"], "status": ConsumptionStatus.unbilled.value}
        )
        if result.deleted_count == 0:
            raise errors.ConflictError("Impossible de supprimer une consommation facturée")

        await self._release_slot(quota_key(
            consumption["resident_id"], consumption["house_id"], consumption["month"], consumption["year"]
        ))
        logger.info(f"Consommation {consumption['_id']} supprimée par {caller.id}")

    async def _check_write_access(self, caller: UserInDB, consumption: Dict[str, Any]) -> None:
        try:
            await self.policy.resident_for(caller, consumption["resident_id"])
        except errors.NotFoundError:
            raise errors.AuthorizationError("Accès non autorisé")
