"""
Facturation des relevés de consommation.

Le couple (facture, relevé) est écrit sans transaction multi-documents :
la facture est insérée, puis le relevé passe à « facturee » par une mise à
jour conditionnelle. Si cette bascule échoue, la facture est supprimée
(rollback compensatoire). L'index unique sur ``invoices.consumption_id``
interdit deux factures concurrentes pour le même relevé.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ecopower.config import settings
from ecopower.db.mongo import CONSUMPTIONS, COUNTERS, HOUSES, INVOICES, USERS
from ecopower.auth.permissions import AccessPolicy
from ecopower.consumptions.models import ConsumptionStatus
from ecopower.houses.services import effective_tariff
from ecopower.invoices.models import InvoiceGenerate, InvoiceStatus
from ecopower.notifications.services import NotificationService
from ecopower.users.models import UserInDB, Role
from ecopower.utils.activity import log_activity
from ecopower.utils.mongodb_utils import convert_mongodb_result, convert_mongodb_results, to_object_id
from ecopower.utils.whatsapp import send_invoice_whatsapp
from ecopower import errors

logger = logging.getLogger(__name__)

INVOICE_COUNTER = "invoice"


def format_invoice_number(sequence: int) -> str:
    return f"FAC-{sequence:06d}"


def invoice_statistics(invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_amount = sum(i["amount"] for i in invoices)
    paid = [i for i in invoices if i["status"] == InvoiceStatus.paid.value]
    total_paid = sum(i["amount"] for i in paid)
    return {
        "total_invoices": len(invoices),
        "total_amount": round(total_amount, 2),
        "total_paid": round(total_paid, 2),
        "total_unpaid": round(total_amount - total_paid, 2),
        "paid_count": len(paid),
        "overdue_count": sum(1 for i in invoices if i["status"] == InvoiceStatus.overdue.value),
    }


class InvoiceService:
    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService):
        self.db = db
        self.notifications = notifications
        self.policy = AccessPolicy(db)

    async def next_sequence(self) -> int:
        """Numéro de séquence suivant, incrémenté atomiquement"""
        counter = await self.db[COUNTERS].find_one_and_update(
            {"_id": INVOICE_COUNTER},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"]

    async def _existing_invoice_conflict(self, consumption_ids: List[ObjectId]) -> errors.ConflictError:
        existing = await self.db[INVOICES].find_one(
            {"consumption_id": {"$in": consumption_ids}}, sort=[("issue_date", -1)]
        )
        return errors.ConflictError(
            "Une facture existe déjà pour cette consommation",
            {"invoice": convert_mongodb_result(existing) if existing else None},
        )

    # ──────────────── Génération ────────────────

    async def generate(self, caller: UserInDB, resident_id: str, data: InvoiceGenerate) -> Dict[str, Any]:
        """
        Facture le premier relevé non facturé du résident pour la période.

        Le montant est recalculé avec le tarif actuel de la maison, pas avec
        celui du relevé.
        """
        resident = await self.policy.resident_for(caller, resident_id)

        consumptions = await self.db[CONSUMPTIONS].find({
            "resident_id": resident["_id"],
            "month": data.month,
            "year": data.year,
        }).sort("reading_date", 1).to_list(length=None)
        if not consumptions:
            raise errors.NotFoundError("Aucune consommation trouvée pour cette période")

        candidate = next(
            (c for c in consumptions if c["status"] == ConsumptionStatus.unbilled.value), None
        )
        if candidate is None:
            raise await self._existing_invoice_conflict([c["_id"] for c in consumptions])
        if await self.db[INVOICES].find_one({"consumption_id": candidate["_id"]}, {"_id": 1}):
            raise await self._existing_invoice_conflict([candidate["_id"]])

        house = await self.db[HOUSES].find_one({"_id": candidate["house_id"]})
        if not house:
            raise errors.NotFoundError("Maison non trouvée")

        tariff = effective_tariff(house)
        amount = round(candidate["kwh"] * tariff + data.fixed_fee, 2)
        sequence = await self.next_sequence()
        issue_date = datetime.utcnow()

        invoice = {
            "number": format_invoice_number(sequence),
            "sequence": sequence,
            "resident_id": resident["_id"],
            "house_id": house["_id"],
            "consumption_id": candidate["_id"],
            "amount": amount,
            "details": {"kwh": candidate["kwh"], "price_kwh": tariff, "fixed_fee": data.fixed_fee},
            "period": {"month": data.month, "year": data.year},
            "issue_date": issue_date,
            "due_date": issue_date + timedelta(days=settings.INVOICE_DUE_DAYS),
            "status": InvoiceStatus.pending.value,
            "paid_at": None,
        }

        try:
            result = await self.db[INVOICES].insert_one(invoice)
        except DuplicateKeyError:
            # Facture concurrente sur le même relevé
            raise await self._existing_invoice_conflict([candidate["_id"]])
        invoice["_id"] = result.inserted_id

        try:
            flipped = await self.db[CONSUMPTIONS].update_one(
                {"_id": candidate["_id"], "status": ConsumptionStatus.unbilled.value},
                {"$set": {"status": ConsumptionStatus.billed.value, "invoice_id": invoice["_id"]}},
            )
            if flipped.modified_count != 1:
                raise errors.ConflictError("La consommation a été modifiée pendant la facturation")
        except Exception:
            await self.db[INVOICES].delete_one({"_id": invoice["_id"]})
            logger.warning(f"↩️ Facture {invoice['number']} annulée : relevé {candidate['_id']} non basculé")
            raise

        logger.info(f"🧾 Facture {invoice['number']} générée : {amount} pour le résident {resident['_id']}")
        await log_activity(self.db, caller.id, "facture_generee", {"invoice_id": str(invoice["_id"])})

        invoice["consumption"] = {"kwh": candidate["kwh"], "month": candidate["month"], "year": candidate["year"]}
        return invoice

    async def dispatch_new_invoice(self, invoice: Dict[str, Any], notify_resident: bool) -> None:
        """Tâche de fond : WhatsApp au résident, push si le propriétaire a généré la facture"""
        resident = await self.db[USERS].find_one({"_id": invoice["resident_id"]}, {"phone": 1})
        if resident and resident.get("phone"):
            try:
                await send_invoice_whatsapp(resident["phone"], invoice["number"], invoice["amount"], invoice["due_date"])
            except Exception as e:
                logger.error(f"WhatsApp facture {invoice['number']} non envoyé : {e}")
        if notify_resident:
            await self.notifications.notify_new_invoice(invoice)

    # ──────────────── Lecture ────────────────

    @staticmethod
    def _filters(query: Dict[str, Any], status: Optional[InvoiceStatus], year: Optional[int]) -> Dict[str, Any]:
        if status:
            query["status"] = status.value
        if year:
            query["issue_date"] = {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)}
        return query

    async def list_by_resident(self, caller: UserInDB, resident_id: str,
                               status: Optional[InvoiceStatus] = None, year: Optional[int] = None) -> Dict[str, Any]:
        resident = await self.policy.resident_for(caller, resident_id)
        query = self._filters({"resident_id": resident["_id"]}, status, year)
        invoices = await self.db[INVOICES].find(query).sort("issue_date", -1).to_list(length=None)
        return {
            "invoices": convert_mongodb_results(invoices),
            "statistics": invoice_statistics(invoices),
        }

    async def list_mine(self, caller: UserInDB, status: Optional[InvoiceStatus] = None,
                        year: Optional[int] = None) -> Dict[str, Any]:
        if caller.role != Role.resident:
            raise errors.AuthorizationError("Accès non autorisé - Résident requis")
        return await self.list_by_resident(caller, caller.id, status, year)

    async def list_by_house(self, caller: UserInDB, house_id: Any,
                            status: Optional[InvoiceStatus] = None, year: Optional[int] = None) -> Dict[str, Any]:
        house = await self.policy.house_for(caller, house_id)
        query = self._filters({"house_id": house["_id"]}, status, year)
        invoices = await self.db[INVOICES].find(query).sort("issue_date", -1).to_list(length=None)

        per_resident: Dict[ObjectId, List[Dict[str, Any]]] = {}
        for invoice in invoices:
            per_resident.setdefault(invoice["resident_id"], []).append(invoice)

        residents = {
            r["_id"]: r
            async for r in self.db[USERS].find(
                {"_id": {"$in": list(per_resident)}}, {"first_name": 1, "last_name": 1}
            )
        }
        statistics = [
            {
                "resident_id": str(rid),
                "resident": convert_mongodb_result(residents[rid]) if rid in residents else None,
                **invoice_statistics(items),
            }
            for rid, items in per_resident.items()
        ]
        return {
            "invoices": convert_mongodb_results(invoices),
            "statistics_by_resident": statistics,
            "house": {"_id": str(house["_id"]), "name": house.get("name"), "address": house.get("address")},
        }

    async def list_my_house(self, caller: UserInDB, status: Optional[InvoiceStatus] = None,
                            year: Optional[int] = None) -> Dict[str, Any]:
        if caller.role != Role.resident:
            raise errors.AuthorizationError("Accès non autorisé - Résident requis")
        house = await self.db[HOUSES].find_one({"residents": to_object_id(caller.id)})
        if not house:
            raise errors.NotFoundError("Aucune maison trouvée pour ce résident")
        return await self.list_by_house(caller, house["_id"], status, year)

    async def _load(self, caller: UserInDB, invoice_id: str) -> Dict[str, Any]:
        invoice = await self.db[INVOICES].find_one({"_id": to_object_id(invoice_id, "Identifiant de la facture")})
        if not invoice:
            raise errors.NotFoundError("Facture non trouvée")
        try:
            await self.policy.resident_for(caller, invoice["resident_id"])
        except errors.NotFoundError:
            raise errors.AuthorizationError("Accès non autorisé")
        return invoice

    async def get(self, caller: UserInDB, invoice_id: str) -> Dict[str, Any]:
        return await self._load(caller, invoice_id)

    # ──────────────── Paiement et retards ────────────────

    async def mark_paid(self, caller: UserInDB, invoice_id: str) -> Dict[str, Any]:
        invoice = await self._load(caller, invoice_id)
        updated = await self.db[INVOICES].find_one_and_update(
            {"_id": invoice["_id"], "status": {"$ne": InvoiceStatus.paid.value}},
            {"$set": {"status": InvoiceStatus.paid.value, "paid_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise errors.ConflictError("Facture déjà payée", {"invoice": convert_mongodb_result(invoice)})

        logger.info(f"💰 Facture {updated['number']} payée")
        await log_activity(self.db, caller.id, "facture_payee", {"invoice_id": str(updated["_id"])})

        if caller.role == Role.resident:
            resident = await self.db[USERS].find_one({"_id": updated["resident_id"]}, {"owner_id": 1})
            if resident and resident.get("owner_id"):
                await self.notifications.notify_payment_received(updated, resident["owner_id"])
        return updated


async def flag_overdue_invoices(db: AsyncIOMotorDatabase, notifications: NotificationService,
                                now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Passe « en retard » les factures en attente dont l'échéance est dépassée
    et envoie un rappel au résident.
    """
    now = now or datetime.utcnow()
    cursor = db[INVOICES].find({"status": InvoiceStatus.pending.value, "due_date": {"$lt": now}})

    flagged = 0
    async for invoice in cursor:
        result = await db[INVOICES].update_one(
            {"_id": invoice["_id"], "status": InvoiceStatus.pending.value},
            {"$set": {"status": InvoiceStatus.overdue.value}},
        )
        if result.modified_count != 1:
            continue  # payée entre-temps
        flagged += 1
        days_late = (now - invoice["due_date"]).days
        await notifications.notify_overdue(invoice, days_late)

    logger.info(f"⏰ Factures vérifiées : {flagged} passée(s) en retard")
    return {"flagged": flagged}
