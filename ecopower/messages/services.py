import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import USERS, MESSAGES
from ecopower.auth.permissions import AccessPolicy
from ecopower.messages.models import MessageCreate
from ecopower.notifications.models import NotificationType
from ecopower.notifications.services import NotificationService
from ecopower.users.models import UserInDB, Role
from ecopower.utils.mongodb_utils import convert_mongodb_results, to_object_id
from ecopower import errors

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


def preview(content: str) -> str:
    content = content.strip()
    return content[:PREVIEW_LENGTH] + "..." if len(content) > PREVIEW_LENGTH else content


def house_members(house: Dict[str, Any]) -> List[ObjectId]:
    members = list(house.get("residents", []))
    if house.get("owner_id"):
        members.append(house["owner_id"])
    return members


class MessageService:
    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService):
        self.db = db
        self.notifications = notifications
        self.policy = AccessPolicy(db)

    async def create(self, sender: UserInDB, data: MessageCreate) -> Dict[str, Any]:
        """
        Enregistre un message dans une maison.

        Retourne le message et la liste des destinataires à prévenir en
        temps réel (le destinataire, ou tous les membres de la maison).
        """
        try:
            house = await self.policy.house_for(sender, data.house_id)
        except errors.NotFoundError:
            raise errors.AuthorizationError("Accès non autorisé à cette maison")

        sender_id = to_object_id(sender.id)
        receiver_id = None
        if data.receiver_id:
            receiver_id = to_object_id(data.receiver_id, "Identifiant du destinataire")
            if receiver_id not in house_members(house):
                raise errors.NotFoundError("Destinataire non trouvé")
            recipients = [receiver_id]
        else:
            recipients = [m for m in house_members(house) if m != sender_id]

        content = data.content.strip()
        if not content:
            raise errors.ValidationError("Le message est vide")

        message = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "house_id": house["_id"],
            "subject": preview(content),
            "content": content,
            "read": False,
            "read_at": None,
            "created_at": datetime.utcnow(),
        }
        result = await self.db[MESSAGES].insert_one(message)
        message["_id"] = result.inserted_id
        logger.info(
            f"💬 Message {result.inserted_id} de {sender.id} "
            f"({'privé' if receiver_id else 'maison'} {house['_id']})"
        )
        return {"message": message, "recipients": recipients}

    async def push_to_residents(self, sender: UserInDB, message: Dict[str, Any], recipients: List[ObjectId]) -> None:
        """Push « Nouveau message » aux résidents, seulement quand le propriétaire écrit"""
        if sender.role != Role.proprietaire:
            return
        residents = self.db[USERS].find({"_id": {"$in": recipients}, "role": Role.resident.value}, {"_id": 1})
        text = f"Nouveau message de {sender.full_name}: {message['subject']}"
        async for resident in residents:
            await self.notifications.send(resident["_id"], text, NotificationType.message)

    async def private_history(self, caller: UserInDB, other_user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        me = to_object_id(caller.id)
        other = to_object_id(other_user_id, "Identifiant de l'utilisateur")
        cursor = self.db[MESSAGES].find({
            "$or": [
                {"sender_id": me, "receiver_id": other},
                {"sender_id": other, "receiver_id": me},
            ]
        }).sort("created_at", 1).limit(limit)
        return convert_mongodb_results(await cursor.to_list(length=limit))

    async def house_history(self, caller: UserInDB, house_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        house = await self.policy.house_for(caller, house_id)
        cursor = self.db[MESSAGES].find(
            {"house_id": house["_id"], "receiver_id": None}
        ).sort("created_at", 1).limit(limit)
        return convert_mongodb_results(await cursor.to_list(length=limit))

    async def mark_read(self, caller: UserInDB, message_id: str) -> Optional[Dict[str, Any]]:
        message = await self.db[MESSAGES].find_one({"_id": to_object_id(message_id, "Identifiant du message")})
        if not message:
            raise errors.NotFoundError("Message non trouvé")
        if str(message.get("receiver_id")) != caller.id:
            raise errors.AuthorizationError("Accès non autorisé")

        read_at = datetime.utcnow()
        await self.db[MESSAGES].update_one({"_id": message["_id"]}, {"$set": {"read": True, "read_at": read_at}})
        message.update({"read": True, "read_at": read_at})
        return message
