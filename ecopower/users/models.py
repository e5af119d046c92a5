from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import Optional
from datetime import datetime
from bson import ObjectId
from enum import Enum

# ────────────────────────────────
# RÔLES ET MÉTHODES D'AUTHENTIFICATION
# ────────────────────────────────

class Role(str, Enum):
    admin = "admin"
    proprietaire = "proprietaire"   # Gérant d'une ou plusieurs maisons
    resident = "resident"           # Occupant facturé


class AuthMethod(str, Enum):
    email = "email"
    google = "google"

# ────────────────────────────────
# UTILISATEUR STOCKÉ
# ────────────────────────────────

class UserInDB(BaseModel):
    id: str = Field(..., alias="_id")
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: Role

    password_hash: Optional[str] = None
    google_id: Optional[str] = None
    auth_method: AuthMethod = AuthMethod.email

    owner_id: Optional[str] = None       # Résidents : propriétaire gestionnaire
    house_id: Optional[str] = None       # Résidents : maison occupée
    device_token: Optional[str] = None   # Jeton FCM
    first_login: bool = False
    refresh_token: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_encoders={
            datetime: lambda v: v.isoformat() if v else None,
            ObjectId: str
        }
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ────────────────────────────────
# SORTIE PUBLIQUE
# ────────────────────────────────

class UserOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: Role
    auth_method: AuthMethod = AuthMethod.email
    owner_id: Optional[str] = None
    house_id: Optional[str] = None
    first_login: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: UserInDB) -> "UserOut":
        return cls(**user.model_dump(exclude={"password_hash", "refresh_token", "google_id", "device_token"}))
