from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.dependencies import get_current_user
from ecopower.auth.permissions import require_role
from ecopower.invoices.models import InvoiceGenerate, InvoiceStatus
from ecopower.invoices.services import InvoiceService
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.users.models import UserInDB, Role
from ecopower.utils.mongodb_utils import convert_mongodb_result

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def get_invoice_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> InvoiceService:
    return InvoiceService(db, notifications)

# ─────────────────────────────────────────────
# 1. Générer la facture d'un résident
# ─────────────────────────────────────────────
@router.post("/generate/{resident_id}", status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    resident_id: str,
    data: InvoiceGenerate,
    background_tasks: BackgroundTasks,
    current_user: UserInDB = Depends(require_role(Role.proprietaire, Role.resident)),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.generate(current_user, resident_id, data)
    background_tasks.add_task(
        service.dispatch_new_invoice, invoice, current_user.role == Role.proprietaire
    )
    return {"message": "Facture générée avec succès", "invoice": convert_mongodb_result(invoice)}

# ─────────────────────────────────────────────
# 2. Mes factures (résident)
# ─────────────────────────────────────────────
@router.get("/me")
async def my_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: UserInDB = Depends(require_role(Role.resident)),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.list_mine(current_user, status_filter, year)


@router.get("/me/house")
async def my_house_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: UserInDB = Depends(require_role(Role.resident)),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.list_my_house(current_user, status_filter, year)

# ─────────────────────────────────────────────
# 3. Factures d'un résident / d'une maison
# ─────────────────────────────────────────────
@router.get("/resident/{resident_id}")
async def resident_invoices(
    resident_id: str,
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: UserInDB = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.list_by_resident(current_user, resident_id, status_filter, year)


@router.get("/house/{house_id}")
async def house_invoices(
    house_id: str,
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: UserInDB = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.list_by_house(current_user, house_id, status_filter, year)

# ─────────────────────────────────────────────
# 4. Détail et paiement
# ─────────────────────────────────────────────
@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    current_user: UserInDB = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get(current_user, invoice_id)
    return {"invoice": convert_mongodb_result(invoice)}


@router.put("/{invoice_id}/pay")
async def mark_invoice_paid(
    invoice_id: str,
    current_user: UserInDB = Depends(require_role(Role.proprietaire, Role.resident)),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.mark_paid(current_user, invoice_id)
    return {"message": "Facture marquée comme payée", "invoice": convert_mongodb_result(invoice)}
