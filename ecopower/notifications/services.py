import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import USERS, NOTIFICATIONS, get_mongo_db
from ecopower.notifications.models import NotificationType
from ecopower.notifications.push import FirebasePushNotifier, PushResult, get_push_notifier
from ecopower.utils.mongodb_utils import convert_mongodb_results, to_object_id

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
]


class NotificationService:
    """
    Notifications utilisateur : chaque envoi est historisé dans la collection
    ``notifications`` puis poussé sur l'appareil si un jeton est connu.

    Toutes les méthodes ``notify_*`` sont « best effort » : une panne du canal
    est journalisée et n'est jamais propagée à l'opération principale.
    """

    def __init__(self, db: AsyncIOMotorDatabase, push: FirebasePushNotifier):
        self.db = db
        self.push = push

    async def send(self, user_id: Any, message: str,
                   notification_type: NotificationType = NotificationType.systeme) -> PushResult:
        try:
            user = await self.db[USERS].find_one({"_id": to_object_id(user_id)})
            if not user:
                logger.error(f"❌ Utilisateur {user_id} non trouvé pour notification")
                return PushResult(delivered=False, reason="USER_NOT_FOUND")

            record = await self.db[NOTIFICATIONS].insert_one({
                "user_id": user["_id"],
                "message": message,
                "type": notification_type.value,
                "read": False,
                "delivered": False,
                "created_at": datetime.utcnow(),
            })

            token = user.get("device_token")
            if not token:
                logger.info(f"🔕 deviceToken manquant pour {user['_id']}, push ignoré")
                return PushResult(delivered=False, reason="DEVICE_TOKEN_MISSING")

            result = await self.push.send(
                token, message, data={"userId": str(user["_id"]), "type": notification_type.value}
            )
            if result.delivered:
                await self.db[NOTIFICATIONS].update_one(
                    {"_id": record.inserted_id}, {"$set": {"delivered": True}}
                )
            return result
        except Exception as e:
            reason = f"Notification non envoyée : {e}"
            logger.error(f"❌ {reason} (user={user_id})")
            return PushResult(delivered=False, reason=reason)

    # ──────────────── Messages métier ────────────────

    async def notify_new_reading(self, consumption: Dict[str, Any]) -> PushResult:
        month_name = MONTH_NAMES[consumption["month"] - 1]
        message = (
            f"Nouveau relevé enregistré pour {month_name} {consumption['year']}: "
            f"{consumption['kwh']} kWh ({consumption['amount']:.2f} FCFA)"
        )
        return await self.send(consumption["resident_id"], message, NotificationType.releve)

    async def notify_high_consumption(self, resident_id: Any, kwh: float, average: float) -> PushResult:
        message = (
            f"Attention ! Votre consommation de {kwh} kWh dépasse votre moyenne habituelle "
            f"de {average:.1f} kWh. Préparez-vous à une facture plus élevée."
        )
        return await self.send(resident_id, message, NotificationType.consommation_elevee)

    async def notify_new_invoice(self, invoice: Dict[str, Any]) -> PushResult:
        message = (
            f"Nouvelle facture {invoice['number']}: {invoice['amount']:.2f} FCFA. "
            f"Échéance: {invoice['due_date'].strftime('%d/%m/%Y')}"
        )
        return await self.send(invoice["resident_id"], message, NotificationType.facture)

    async def notify_payment_received(self, invoice: Dict[str, Any], owner_id: Any) -> PushResult:
        message = f"Paiement reçu pour la facture {invoice['number']} ({invoice['amount']:.2f} FCFA)."
        return await self.send(owner_id, message, NotificationType.paiement)

    async def notify_overdue(self, invoice: Dict[str, Any], days_late: int) -> PushResult:
        message = (
            f"Rappel: votre facture {invoice['number']} ({invoice['amount']:.2f} FCFA) "
            f"a {days_late} jour(s) de retard."
        )
        return await self.send(invoice["resident_id"], message, NotificationType.retard)

    async def notify_new_resident(self, resident_name: str, owner_id: Any) -> PushResult:
        message = f"Le résident {resident_name} a été ajouté à votre maison."
        return await self.send(owner_id, message, NotificationType.nouveau_resident)

    # ──────────────── Lecture ────────────────

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"user_id": to_object_id(user_id)}
        if unread_only:
            query["read"] = False
        cursor = self.db[NOTIFICATIONS].find(query).sort("created_at", -1).limit(limit)
        return convert_mongodb_results(await cursor.to_list(length=limit))

    async def mark_read(self, user_id: str, notification_id: Optional[str] = None) -> int:
        """Marque une notification (ou toutes) comme lue(s)"""
        query: Dict[str, Any] = {"user_id": to_object_id(user_id), "read": False}
        if notification_id:
            query["_id"] = to_object_id(notification_id)
        result = await self.db[NOTIFICATIONS].update_many(query, {"$set": {"read": True}})
        return result.modified_count


def get_notification_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    push: FirebasePushNotifier = Depends(get_push_notifier),
) -> NotificationService:
    return NotificationService(db, push)
