from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

from ecopower.users.models import Role


class NotificationType(str, Enum):
    releve = "releve"                           # Nouveau relevé enregistré
    consommation_elevee = "consommation_elevee"
    facture = "facture"
    paiement = "paiement"
    nouveau_resident = "nouveau_resident"
    retard = "retard"
    message = "message"
    systeme = "systeme"


class BroadcastRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=500)
    role: Optional[Role] = None  # Filtrer par rôle, tous les utilisateurs sinon
