import logging
import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import USERS, HOUSES, CONSUMPTIONS, INVOICES, LOGS
from ecopower.invoices.models import InvoiceStatus
from ecopower.notifications.models import NotificationType
from ecopower.notifications.services import NotificationService
from ecopower.residents.services import PUBLIC_PROJECTION
from ecopower.users.models import Role
from ecopower.utils.mongodb_utils import convert_mongodb_result, convert_mongodb_results, to_object_id

logger = logging.getLogger(__name__)

TOP_HOUSES = 5


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}


class AdminService:
    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService):
        self.db = db
        self.notifications = notifications

    async def _group_totals(self, collection: str, key: str, fields: List[str]) -> Dict[Any, Dict[str, float]]:
        pipeline = [{"$group": {"_id": f"${key}", "count": {"$sum": 1}, **{f: {"$sum": f"${f}"} for f in fields}}}]
        return {row["_id"]: row async for row in self.db[collection].aggregate(pipeline)}

    async def dashboard_stats(self) -> Dict[str, Any]:
        users_by_role = await self._group_totals(USERS, "role", [])
        invoices_by_status = await self._group_totals(INVOICES, "status", ["amount"])

        consumption_totals = await self.db[CONSUMPTIONS].aggregate([
            {"$group": {"_id": None, "count": {"$sum": 1}, "kwh": {"$sum": "$kwh"}, "amount": {"$sum": "$amount"}}}
        ]).to_list(length=1)
        consumption = consumption_totals[0] if consumption_totals else {"count": 0, "kwh": 0, "amount": 0}

        top = await self.db[CONSUMPTIONS].aggregate([
            {"$group": {"_id": "$house_id", "kwh": {"$sum": "$kwh"}, "amount": {"$sum": "$amount"}, "count": {"$sum": 1}}},
            {"$sort": {"kwh": -1}},
            {"$limit": TOP_HOUSES},
        ]).to_list(length=TOP_HOUSES)
        names = {
            h["_id"]: h.get("name")
            async for h in self.db[HOUSES].find({"_id": {"$in": [t["_id"] for t in top]}}, {"name": 1})
        }

        def role_count(role: Role) -> int:
            return users_by_role.get(role.value, {}).get("count", 0)

        def status_count(status: InvoiceStatus) -> int:
            return invoices_by_status.get(status.value, {}).get("count", 0)

        return {
            "users": {
                "total": sum(row["count"] for row in users_by_role.values()),
                "owners": role_count(Role.proprietaire),
                "residents": role_count(Role.resident),
                "admins": role_count(Role.admin),
            },
            "houses": {"total": await self.db[HOUSES].count_documents({})},
            "consumptions": {
                "total": consumption["count"],
                "total_kwh": consumption["kwh"],
                "total_amount": round(consumption["amount"], 2),
            },
            "invoices": {
                "total": sum(row["count"] for row in invoices_by_status.values()),
                "paid": status_count(InvoiceStatus.paid),
                "overdue": status_count(InvoiceStatus.overdue),
                "pending": status_count(InvoiceStatus.pending),
                "revenue": round(invoices_by_status.get(InvoiceStatus.paid.value, {}).get("amount", 0), 2),
            },
            "top_houses": [
                {
                    "house_id": str(t["_id"]),
                    "name": names.get(t["_id"]),
                    "total_kwh": t["kwh"],
                    "total_amount": round(t["amount"], 2),
                    "reading_count": t["count"],
                }
                for t in top
            ],
        }

    async def list_users(self, page: int = 1, limit: int = 20, role: Optional[Role] = None,
                         search: Optional[str] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role.value
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]

        total = await self.db[USERS].count_documents(query)
        cursor = self.db[USERS].find(query, PUBLIC_PROJECTION).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
        return {
            "users": convert_mongodb_results(await cursor.to_list(length=limit)),
            "pagination": paginate(page, limit, total),
        }

    async def list_houses(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        total = await self.db[HOUSES].count_documents({})
        houses = await self.db[HOUSES].find({}).sort("created_at", -1).skip((page - 1) * limit).to_list(length=limit)

        owners = {
            o["_id"]: o
            async for o in self.db[USERS].find(
                {"_id": {"$in": list({h.get("owner_id") for h in houses})}},
                {"first_name": 1, "last_name": 1, "email": 1},
            )
        }
        result = []
        for house in houses:
            data = convert_mongodb_result(house)
            data["resident_count"] = len(house.get("residents", []))
            data["owner"] = convert_mongodb_result(owners.get(house.get("owner_id")))
            result.append(data)
        return {"houses": result, "pagination": paginate(page, limit, total)}

    async def list_logs(self, page: int = 1, limit: int = 50, user_id: Optional[str] = None,
                        action: Optional[str] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if user_id:
            query["user_id"] = to_object_id(user_id, "Identifiant de l'utilisateur")
        if action:
            query["action"] = action

        total = await self.db[LOGS].count_documents(query)
        cursor = self.db[LOGS].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
        return {
            "logs": convert_mongodb_results(await cursor.to_list(length=limit)),
            "pagination": paginate(page, limit, total),
        }

    async def broadcast(self, message: str, role: Optional[Role] = None) -> Dict[str, int]:
        """Notification système à tous les utilisateurs (ou à un rôle)"""
        query = {"role": role.value} if role else {}
        sent = delivered = 0
        async for user in self.db[USERS].find(query, {"_id": 1}):
            result = await self.notifications.send(user["_id"], message, NotificationType.systeme)
            sent += 1
            delivered += int(result.delivered)
        logger.info(f"📢 Diffusion : {sent} notification(s), {delivered} push délivré(s)")
        return {"sent": sent, "delivered": delivered}
