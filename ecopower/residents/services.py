import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import USERS, HOUSES
from ecopower.auth.password import hash_password, generate_temporary_password
from ecopower.auth.permissions import AccessPolicy
from ecopower.notifications.channels import deliver_credentials
from ecopower.notifications.services import NotificationService
from ecopower.residents.models import ResidentCreate, ResidentUpdate
from ecopower.users.models import UserInDB, UserOut, Role, AuthMethod
from ecopower.users import services as user_services
from ecopower.utils.mongodb_utils import to_object_id, convert_mongodb_result
from ecopower import errors

logger = logging.getLogger(__name__)

PUBLIC_PROJECTION = {"password_hash": 0, "refresh_token": 0, "google_id": 0, "device_token": 0}


def house_summary(house: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not house:
        return None
    return {"_id": str(house["_id"]), "name": house.get("name"), "address": house.get("address")}


class ResidentService:
    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService):
        self.db = db
        self.notifications = notifications
        self.policy = AccessPolicy(db)

    async def _owned_house(self, owner: UserInDB, house_id: str) -> Dict[str, Any]:
        house = await self.db[HOUSES].find_one({
            "_id": to_object_id(house_id, "Identifiant de la maison"),
            "owner_id": to_object_id(owner.id),
        })
        if not house:
            raise errors.NotFoundError("Maison non trouvée")
        return house

    async def add(self, owner: UserInDB, data: ResidentCreate) -> Dict[str, Any]:
        """
        Crée un résident rattaché à une maison du propriétaire.

        Un mot de passe temporaire est généré (sauf résident Google) et transmis
        par email, WhatsApp en secours.
        """
        if await user_services.email_taken(self.db, data.email):
            raise errors.ConflictError("Cet email est déjà utilisé")

        house = await self._owned_house(owner, data.house_id)

        temporary_password = None
        user_doc = {
            "first_name": data.first_name.strip(),
            "last_name": data.last_name.strip(),
            "email": data.email,
            "phone": data.phone,
            "role": Role.resident.value,
            "auth_method": data.auth_method.value,
            "owner_id": to_object_id(owner.id),
            "house_id": house["_id"],
        }
        if data.auth_method == AuthMethod.email:
            temporary_password = generate_temporary_password()
            user_doc["password_hash"] = hash_password(temporary_password)
            user_doc["first_login"] = True

        resident = await user_services.create_user(self.db, user_doc)
        await self.db[HOUSES].update_one(
            {"_id": house["_id"]}, {"$addToSet": {"residents": to_object_id(resident.id)}}
        )

        credentials_sent = {"success": False, "channel": None}
        if temporary_password:
            credentials_sent = await deliver_credentials(
                resident.email, resident.phone, resident.full_name, temporary_password
            )

        await self.notifications.notify_new_resident(resident.full_name, owner.id)

        return {
            "resident": UserOut.from_user(resident).model_dump(),
            "credentials_sent": {k: v for k, v in credentials_sent.items() if k in ("success", "channel", "mode")},
        }

    async def list_for_owner(self, owner: UserInDB) -> List[Dict[str, Any]]:
        cursor = self.db[USERS].find(
            {"owner_id": to_object_id(owner.id), "role": Role.resident.value}, PUBLIC_PROJECTION
        ).sort("created_at", -1)
        residents = await cursor.to_list(length=None)

        house_ids = list({r["house_id"] for r in residents if r.get("house_id")})
        houses = {
            h["_id"]: h
            async for h in self.db[HOUSES].find({"_id": {"$in": house_ids}})
        }

        result = []
        for resident in residents:
            data = convert_mongodb_result(resident)
            # Maison éventuellement supprimée entre-temps
            data["house"] = house_summary(houses.get(resident.get("house_id")))
            result.append(data)
        return result

    async def get(self, caller: UserInDB, resident_id: str) -> Dict[str, Any]:
        resident = await self.policy.resident_for(caller, resident_id)
        house = await self.db[HOUSES].find_one({"_id": resident["house_id"]}) if resident.get("house_id") else None
        data = convert_mongodb_result({k: v for k, v in resident.items() if k not in PUBLIC_PROJECTION})
        data["house"] = house_summary(house)
        return data

    async def update(self, owner: UserInDB, resident_id: str, data: ResidentUpdate) -> Dict[str, Any]:
        resident = await self.policy.resident_for(owner, resident_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in update_data:
            update_data["email"] = update_data["email"].strip().lower()
            if update_data["email"] != resident["email"] and await user_services.email_taken(self.db, update_data["email"]):
                raise errors.ConflictError("Cet email est déjà utilisé")

        if "house_id" in update_data:
            new_house = await self._owned_house(owner, update_data["house_id"])
            update_data["house_id"] = new_house["_id"]
            if new_house["_id"] != resident.get("house_id"):
                await self.db[HOUSES].update_many(
                    {"residents": resident["_id"]}, {"$pull": {"residents": resident["_id"]}}
                )
                await self.db[HOUSES].update_one(
                    {"_id": new_house["_id"]}, {"$addToSet": {"residents": resident["_id"]}}
                )

        updated = await user_services.update_user(self.db, resident["_id"], update_data)
        return UserOut.from_user(updated).model_dump()

    async def reset_password(self, owner: UserInDB, resident_id: str) -> Dict[str, Any]:
        resident = await self.policy.resident_for(owner, resident_id)
        temporary_password = generate_temporary_password()
        await user_services.update_user(self.db, resident["_id"], {
            "password_hash": hash_password(temporary_password),
            "first_login": True,
            "refresh_token": None,
        })
        sent = await deliver_credentials(
            resident["email"], resident.get("phone"),
            f"{resident['first_name']} {resident['last_name']}", temporary_password, reset=True,
        )
        logger.info(f"Mot de passe du résident {resident['_id']} réinitialisé (canal={sent.get('channel')})")
        return {"success": sent.get("success", False), "channel": sent.get("channel")}

    async def my_house_residents(self, caller: UserInDB) -> List[Dict[str, Any]]:
        """Résidents de la maison de l'appelant (première maison pour un propriétaire)"""
        if caller.role == Role.proprietaire:
            house = await self.db[HOUSES].find_one({"owner_id": to_object_id(caller.id)}, sort=[("created_at", 1)])
            house_id = house["_id"] if house else None
        elif caller.role == Role.resident:
            house_id = to_object_id(caller.house_id) if caller.house_id else None
        else:
            raise errors.AuthorizationError("Rôle non autorisé")

        if not house_id:
            return []

        cursor = self.db[USERS].find({
            "house_id": house_id,
            "role": Role.resident.value,
            "_id": {"$ne": to_object_id(caller.id)},
        }, PUBLIC_PROJECTION)
        return [convert_mongodb_result(r) async for r in cursor]
