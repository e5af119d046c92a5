from typing import Any, Dict
from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.auth.dependencies import get_current_user
from ecopower.db.mongo import USERS, HOUSES
from ecopower.users.models import UserInDB, Role
from ecopower.utils.mongodb_utils import to_object_id
from ecopower import errors


def require_role(*roles: Role):
    def wrapper(user: UserInDB = Depends(get_current_user)):
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Accès interdit (rôle requis)"
            )
        return user
    return wrapper


class AccessPolicy:
    """
    Droits d'un appelant sur les résidents et les maisons.

    - admin : accès à tout
    - propriétaire : ses résidents (``owner_id``) et ses maisons (``owner_id``)
    - résident : lui-même et la maison qui le liste
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    @staticmethod
    def can_access_resident(caller: UserInDB, resident: Dict[str, Any]) -> bool:
        if caller.role == Role.admin:
            return True
        if caller.role == Role.proprietaire:
            return str(resident.get("owner_id")) == caller.id
        return str(resident["_id"]) == caller.id

    @staticmethod
    def can_access_house(caller: UserInDB, house: Dict[str, Any]) -> bool:
        if caller.role == Role.admin:
            return True
        if caller.role == Role.proprietaire:
            return str(house.get("owner_id")) == caller.id
        return caller.id in {str(r) for r in house.get("residents", [])}

    async def resident_for(self, caller: UserInDB, resident_id: Any) -> Dict[str, Any]:
        """
        Charge un résident accessible par l'appelant.

        Un résident qui vise quelqu'un d'autre reçoit une ``AuthorizationError`` ;
        un propriétaire qui vise un résident qui n'est pas le sien reçoit une
        ``NotFoundError`` pour ne pas révéler son existence.
        """
        oid = to_object_id(resident_id, "Identifiant du résident")
        if caller.role == Role.resident and str(oid) != caller.id:
            raise errors.AuthorizationError("Accès non autorisé")

        resident = await self.db[USERS].find_one({"_id": oid, "role": Role.resident.value})
        if not resident or not self.can_access_resident(caller, resident):
            raise errors.NotFoundError("Résident non trouvé")
        return resident

    async def house_for(self, caller: UserInDB, house_id: Any) -> Dict[str, Any]:
        oid = to_object_id(house_id, "Identifiant de la maison")
        house = await self.db[HOUSES].find_one({"_id": oid})
        if not house or not self.can_access_house(caller, house):
            raise errors.NotFoundError("Maison non trouvée")
        return house
