from datetime import datetime, timedelta
from jose import jwt, JWTError
from typing import Optional
from ecopower.config import settings
import logging

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crée un token JWT signé avec les informations fournies.

    :param data: Dictionnaire avec les données à encoder (ex: {"user_id": "65f..."})
    :param expires_delta: Durée de validité du token (timedelta)
    :return: Token JWT encodé
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": ACCESS})

    if "user_id" in to_encode:
        to_encode["sub"] = str(to_encode["user_id"])

    token = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    logger.info(f"✅ Token généré pour user_id={data.get('user_id')}")
    return token


def create_refresh_token(user_id: str) -> str:
    expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode = {"sub": str(user_id), "user_id": str(user_id), "exp": expire, "type": REFRESH}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def create_token_pair(user_id: str, role: str) -> dict:
    return {
        "access_token": create_access_token({"user_id": str(user_id), "role": role}),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }


def decode_token(token: str, expected_type: str = ACCESS) -> Optional[dict]:
    """
    🔐 Décode et vérifie un token JWT.

    Retourne le payload si le token est valide et du type attendu, sinon None.

    :param token: JWT à décoder
    :param expected_type: "access" ou "refresh"
    :return: Dictionnaire du payload ou None si le token est invalide ou mal formé
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"❌ Échec de décodage du token : {e}")
        return None

    if not payload.get("sub"):
        logger.warning("⚠️ Token valide mais champ 'sub' manquant dans le payload.")
        return None

    if payload.get("type") != expected_type:
        logger.warning(f"⚠️ Type de token inattendu : {payload.get('type')}")
        return None

    return payload
