from ecopower.db.mongo import USERS
from ecopower.users.models import UserInDB, Role, AuthMethod
from ecopower.utils.mongodb_utils import convert_mongodb_result, to_object_id
from ecopower import errors
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
from typing import Optional, Dict, Any
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


def validate_auth_methods(user_doc: Dict[str, Any]) -> None:
    """
    Au moins une méthode d'authentification est requise, sauf pour un
    résident pré-enregistré en attente de sa première connexion Google.
    """
    if (
        user_doc.get("role") == Role.resident.value
        and user_doc.get("auth_method") == AuthMethod.google.value
        and not user_doc.get("google_id")
        and not user_doc.get("password_hash")
    ):
        return

    if not user_doc.get("google_id") and not user_doc.get("password_hash"):
        raise errors.ValidationError(
            "Au moins une méthode d'authentification est requise (Google ou mot de passe)"
        )


def to_user(user_doc: Optional[Dict[str, Any]]) -> Optional[UserInDB]:
    if not user_doc:
        return None
    return UserInDB(**convert_mongodb_result(user_doc))


async def create_user(db: AsyncIOMotorDatabase, user_doc: Dict[str, Any]) -> UserInDB:
    """Créer un utilisateur après validation des méthodes d'authentification"""
    user_doc = dict(user_doc)
    user_doc["email"] = user_doc["email"].strip().lower()
    user_doc.setdefault("auth_method", AuthMethod.email.value)
    user_doc.setdefault("first_login", False)
    user_doc.setdefault("owner_id", None)
    user_doc.setdefault("house_id", None)
    user_doc.setdefault("device_token", None)
    user_doc.setdefault("refresh_token", None)
    validate_auth_methods(user_doc)

    now = datetime.utcnow()
    user_doc["created_at"] = now
    user_doc["updated_at"] = now

    try:
        result = await db[USERS].insert_one(user_doc)
    except DuplicateKeyError:
        raise errors.ConflictError("Cet email est déjà utilisé")

    created = await db[USERS].find_one({"_id": result.inserted_id})
    logger.info(f"Utilisateur créé : id={result.inserted_id}, role={user_doc.get('role')}")
    return to_user(created)


async def get_user_by_id(db: AsyncIOMotorDatabase, user_id: Any) -> Optional[UserInDB]:
    return to_user(await db[USERS].find_one({"_id": to_object_id(user_id)}))


async def get_user_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[UserInDB]:
    return to_user(await db[USERS].find_one({"email": email.strip().lower()}))


async def email_taken(db: AsyncIOMotorDatabase, email: str) -> bool:
    return await db[USERS].find_one({"email": email.strip().lower()}, {"_id": 1}) is not None


async def update_user(db: AsyncIOMotorDatabase, user_id: Any, update_data: Dict[str, Any]) -> Optional[UserInDB]:
    """Mettre à jour un utilisateur et retourner la version à jour"""
    update_data = dict(update_data)
    update_data["updated_at"] = datetime.utcnow()
    try:
        await db[USERS].update_one({"_id": to_object_id(user_id)}, {"$set": update_data})
    except DuplicateKeyError:
        raise errors.ConflictError("Cet email est déjà utilisé")
    return await get_user_by_id(db, user_id)
