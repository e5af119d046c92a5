import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from ecopower.config import settings

logger = logging.getLogger(__name__)

# Client MongoDB asynchrone
client = AsyncIOMotorClient(settings.MONGO_URL)
db = client[settings.MONGO_DB]

# Collections
USERS = "users"
HOUSES = "houses"
CONSUMPTIONS = "consumptions"
INVOICES = "invoices"
MESSAGES = "messages"
NOTIFICATIONS = "notifications"
LOGS = "logs"
COUNTERS = "counters"
READING_QUOTAS = "reading_quotas"
APP_SETTINGS = "app_settings"


def get_mongo_db() -> AsyncIOMotorDatabase:
    """Dépendance FastAPI : base MongoDB courante"""
    return db


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    """Crée les index nécessaires (idempotent)"""
    await database[USERS].create_index("email", unique=True)
    await database[USERS].create_index([("owner_id", ASCENDING), ("role", ASCENDING)])

    await database[HOUSES].create_index("owner_id")
    await database[HOUSES].create_index("residents")

    await database[CONSUMPTIONS].create_index([
        ("resident_id", ASCENDING),
        ("year", DESCENDING),
        ("month", DESCENDING),
        ("reading_date", DESCENDING),
    ])
    await database[CONSUMPTIONS].create_index("house_id")

    # Une seule facture par consommation, numéros uniques
    await database[INVOICES].create_index("consumption_id", unique=True)
    await database[INVOICES].create_index("number", unique=True)
    await database[INVOICES].create_index([("resident_id", ASCENDING), ("issue_date", DESCENDING)])

    await database[MESSAGES].create_index([("sender_id", ASCENDING), ("receiver_id", ASCENDING)])
    await database[MESSAGES].create_index("house_id")
    await database[NOTIFICATIONS].create_index("user_id")
    await database[LOGS].create_index("user_id")
    await database[APP_SETTINGS].create_index("key", unique=True)
    logger.info("✅ Index MongoDB vérifiés")
