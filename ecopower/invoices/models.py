from pydantic import BaseModel, Field
from enum import Enum


class InvoiceStatus(str, Enum):
    pending = "en attente"
    paid = "payée"
    overdue = "en retard"


class InvoiceGenerate(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    # Frais fixes ajoutés au montant calculé (abonnement, entretien...)
    fixed_fee: float = Field(0, ge=0)
