"""
Suppression en cascade des utilisateurs et des maisons.

MongoDB ne fournit pas de transaction entre collections dans notre
déploiement : chaque cascade supprime d'abord les enfants puis la racine en
dernier. Chaque étape est idempotente ; si le processus s'arrête au milieu,
la racine existe toujours et la même suppression peut être relancée pour
terminer le nettoyage. Les lectures tolèrent une référence orpheline
transitoire (maison absente rendue comme ``None``).
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import (
    USERS, HOUSES, CONSUMPTIONS, INVOICES, MESSAGES, NOTIFICATIONS, LOGS, READING_QUOTAS,
)
from ecopower.users.models import Role
from ecopower.utils.mongodb_utils import to_object_id
from ecopower import errors

logger = logging.getLogger(__name__)


class DeletionCoordinator:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    # ──────────────── Points d'entrée ────────────────

    async def delete_user(self, user_id: Any) -> Dict[str, int]:
        """Supprime un utilisateur quel que soit son rôle, avec toutes ses données"""
        oid = to_object_id(user_id, "Identifiant de l'utilisateur")
        user = await self.db[USERS].find_one({"_id": oid})
        if not user:
            raise errors.NotFoundError("Utilisateur non trouvé")

        if user["role"] == Role.admin.value:
            admin_count = await self.db[USERS].count_documents({"role": Role.admin.value})
            if admin_count <= 1:
                raise errors.ConflictError("Impossible de supprimer le dernier administrateur")

        if user["role"] == Role.proprietaire.value:
            return await self._delete_owner(user)
        if user["role"] == Role.resident.value:
            return await self._delete_resident(user)

        stats = await self._purge_user_traces([oid])
        await self.db[USERS].update_many({"owner_id": oid}, {"$set": {"owner_id": None}})
        await self.db[USERS].delete_one({"_id": oid})
        stats["users"] = 1
        logger.info(f"🗑️ Administrateur {oid} supprimé")
        return stats

    async def delete_resident(self, resident_id: Any, owner_id: Optional[Any] = None) -> Dict[str, int]:
        """Supprime un résident ; ``owner_id`` restreint aux résidents de ce propriétaire"""
        query: Dict[str, Any] = {
            "_id": to_object_id(resident_id, "Identifiant du résident"),
            "role": Role.resident.value,
        }
        if owner_id is not None:
            query["owner_id"] = to_object_id(owner_id)
        resident = await self.db[USERS].find_one(query)
        if not resident:
            raise errors.NotFoundError("Résident non trouvé")
        return await self._delete_resident(resident)

    async def delete_house(self, house_id: Any, owner_id: Optional[Any] = None) -> Dict[str, int]:
        """Supprime une maison, ses relevés et factures ; ses résidents sont détachés"""
        query: Dict[str, Any] = {"_id": to_object_id(house_id, "Identifiant de la maison")}
        if owner_id is not None:
            query["owner_id"] = to_object_id(owner_id)
        house = await self.db[HOUSES].find_one(query)
        if not house:
            raise errors.NotFoundError("Maison non trouvée")

        hid = house["_id"]
        stats = {
            "consumptions": (await self.db[CONSUMPTIONS].delete_many({"house_id": hid})).deleted_count,
            "invoices": (await self.db[INVOICES].delete_many({"house_id": hid})).deleted_count,
            "messages": (await self.db[MESSAGES].delete_many({"house_id": hid})).deleted_count,
        }
        await self.db[READING_QUOTAS].delete_many({"house_id": hid})
        await self.db[USERS].update_many({"house_id": hid}, {"$set": {"house_id": None}})
        await self.db[HOUSES].delete_one({"_id": hid})
        stats["houses"] = 1
        logger.info(f"🗑️ Maison {hid} supprimée : {stats}")
        return stats

    # ──────────────── Cascades ────────────────

    async def _delete_owner(self, owner: Dict[str, Any]) -> Dict[str, int]:
        owner_id = owner["_id"]
        houses = await self.db[HOUSES].find({"owner_id": owner_id}).to_list(length=None)
        house_ids = [house["_id"] for house in houses]

        # Résidents listés dans les maisons ou rattachés au propriétaire
        resident_ids = {rid for house in houses for rid in house.get("residents", [])}
        attached = self.db[USERS].find({"owner_id": owner_id, "role": Role.resident.value}, {"_id": 1})
        resident_ids.update([doc["_id"] async for doc in attached])
        resident_ids = list(resident_ids)

        scope = {"$or": [{"house_id": {"$in": house_ids}}, {"resident_id": {"$in": resident_ids}}]}
        stats = {
            "consumptions": (await self.db[CONSUMPTIONS].delete_many(scope)).deleted_count,
            "invoices": (await self.db[INVOICES].delete_many(scope)).deleted_count,
        }
        await self.db[READING_QUOTAS].delete_many(scope)

        stats.update(await self._purge_user_traces(resident_ids + [owner_id]))
        stats["messages"] += (await self.db[MESSAGES].delete_many({"house_id": {"$in": house_ids}})).deleted_count

        stats["users"] = (await self.db[USERS].delete_many({
            "_id": {"$in": resident_ids}, "role": Role.resident.value,
        })).deleted_count
        stats["houses"] = (await self.db[HOUSES].delete_many({"_id": {"$in": house_ids}})).deleted_count

        # Références restantes vers le propriétaire supprimé
        await self.db[USERS].update_many({"owner_id": owner_id}, {"$set": {"owner_id": None}})
        await self.db[USERS].delete_one({"_id": owner_id})
        stats["users"] += 1
        logger.info(f"🗑️ Propriétaire {owner_id} supprimé : {stats}")
        return stats

    async def _delete_resident(self, resident: Dict[str, Any]) -> Dict[str, int]:
        rid = resident["_id"]
        stats = {
            "consumptions": (await self.db[CONSUMPTIONS].delete_many({"resident_id": rid})).deleted_count,
            "invoices": (await self.db[INVOICES].delete_many({"resident_id": rid})).deleted_count,
        }
        await self.db[READING_QUOTAS].delete_many({"resident_id": rid})
        stats.update(await self._purge_user_traces([rid]))

        await self.db[HOUSES].update_many({"residents": rid}, {"$pull": {"residents": rid}})
        await self.db[USERS].delete_one({"_id": rid})
        stats["users"] = 1
        logger.info(f"🗑️ Résident {rid} supprimé : {stats}")
        return stats

    async def _purge_user_traces(self, user_ids: Iterable[ObjectId]) -> Dict[str, int]:
        """Messages, notifications et journaux des utilisateurs supprimés"""
        ids: List[ObjectId] = list(user_ids)
        messages = await self.db[MESSAGES].delete_many({
            "$or": [{"sender_id": {"$in": ids}}, {"receiver_id": {"$in": ids}}]
        })
        notifications = await self.db[NOTIFICATIONS].delete_many({"user_id": {"$in": ids}})
        logs = await self.db[LOGS].delete_many({"user_id": {"$in": ids}})
        return {
            "messages": messages.deleted_count,
            "notifications": notifications.deleted_count,
            "logs": logs.deleted_count,
        }
