from pydantic import BaseModel, Field, EmailStr
from typing import Optional

from ecopower.users.models import AuthMethod


class ResidentCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    phone: str = Field(..., min_length=4, max_length=30)
    house_id: str
    # google : le résident se connectera via Google, aucun mot de passe n'est généré
    auth_method: AuthMethod = AuthMethod.email


class ResidentUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=80)
    last_name: Optional[str] = Field(None, min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=4, max_length=30)
    house_id: Optional[str] = None
