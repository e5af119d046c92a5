import logging
from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import LOGS
from ecopower.utils.mongodb_utils import to_object_id

logger = logging.getLogger(__name__)


async def log_activity(db: AsyncIOMotorDatabase, user_id: Any, action: str,
                       details: Optional[Dict[str, Any]] = None) -> None:
    """Trace une action utilisateur (journal d'administration)"""
    try:
        await db[LOGS].insert_one({
            "user_id": to_object_id(user_id),
            "action": action,
            "details": details or {},
            "created_at": datetime.utcnow(),
        })
    except Exception as e:
        logger.warning(f"Journal d'activité non écrit ({action}) : {e}")
