from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.jwt_handler import decode_token
from ecopower.users.models import UserInDB
from ecopower.users import services as user_services
from ecopower import errors

# Initialiser le logger
logger = logging.getLogger(__name__)

# Utilisé pour extraire le token depuis le header Authorization
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def resolve_user_from_token(db: AsyncIOMotorDatabase, token: Optional[str]) -> Optional[UserInDB]:
    """Retourne l'utilisateur associé à un token d'accès, ou None"""
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        return await user_services.get_user_by_id(db, payload["sub"])
    except errors.ValidationError:
        logger.warning(f"⚠️ Champ 'sub' mal formé dans token : {payload.get('sub')}")
        return None


# 🔒 Récupération obligatoire de l'utilisateur courant
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db)
) -> UserInDB:
    """
    🔐 Récupère l'utilisateur courant à partir du token JWT.
    """
    user = await resolve_user_from_token(db, token)
    if not user:
        logger.warning("⛔ Accès refusé : token invalide, expiré ou utilisateur supprimé")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalide ou expiré",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(f"✅ Utilisateur authentifié : id={user.id}, role={user.role.value}")
    return user
