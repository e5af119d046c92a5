from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.db.mongo import get_mongo_db
from ecopower.contact.models import AppInfo, ContactRequest
from ecopower.contact import services

router = APIRouter(tags=["contact"])

# ─────────────────────────────────────────────
# 1. Formulaire de contact du site (public)
# ─────────────────────────────────────────────
@router.post("/contact")
async def send_contact_message(data: ContactRequest):
    return await services.send_contact_message(data)

# ─────────────────────────────────────────────
# 2. Coordonnées de l'application (public)
# ─────────────────────────────────────────────
@router.get("/app-info", response_model=AppInfo)
async def app_info(db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    return await services.get_app_info(db)
