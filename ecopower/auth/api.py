from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
import asyncio
import logging

import requests

from ecopower.config import settings
from ecopower.db.mongo import USERS, get_mongo_db
from ecopower.auth import schemas, password, jwt_handler
from ecopower.auth.dependencies import get_current_user
from ecopower.notifications.channels import deliver_credentials
from ecopower.users.models import UserInDB, UserOut, Role, AuthMethod
from ecopower.users import services as user_services
from ecopower.utils.activity import log_activity
from ecopower import errors

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

GOOGLE_TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_TIMEOUT_SECONDS = 10
FORGOT_PASSWORD_MESSAGE = (
    "Si un compte existe avec cet email, un nouveau mot de passe temporaire a été généré et envoyé."
)


async def issue_tokens(db: AsyncIOMotorDatabase, user: UserInDB) -> dict:
    """Génère une paire de tokens et mémorise le refresh token (rotation)"""
    tokens = jwt_handler.create_token_pair(user.id, user.role.value)
    await user_services.update_user(db, user.id, {"refresh_token": tokens["refresh_token"]})
    return tokens


def auth_response(message: str, user: UserInDB, tokens: dict) -> dict:
    return {
        "message": message,
        "user": UserOut.from_user(user).model_dump(),
        # Le résident doit changer son mot de passe temporaire
        "requires_password_change": user.first_login,
        **tokens,
    }


def _fetch_google_token_info(id_token: str) -> requests.Response:
    return requests.get(GOOGLE_TOKEN_INFO_URL, params={"id_token": id_token}, timeout=GOOGLE_TIMEOUT_SECONDS)


async def verify_google_token(id_token: str) -> dict:
    """
    Vérifie un ID token Google auprès de l'endpoint ``tokeninfo``.

    Retourne les informations du compte (sub, email, given_name, family_name).
    """
    try:
        response = await asyncio.to_thread(_fetch_google_token_info, id_token)
    except requests.RequestException as e:
        logger.error(f"❌ Google tokeninfo injoignable : {e}")
        raise errors.AuthenticationError("Token Google invalide")

    if response.status_code != 200:
        raise errors.AuthenticationError("Token Google invalide")

    data = response.json()
    if settings.GOOGLE_CLIENT_ID and data.get("aud") != settings.GOOGLE_CLIENT_ID:
        logger.warning(f"⚠️ Token Google émis pour une autre application : {data.get('aud')}")
        raise errors.AuthenticationError("Token Google invalide")
    if not data.get("email") or not data.get("sub"):
        raise errors.AuthenticationError("Impossible de récupérer l'email Google")
    return data

# ─────────────────────────────────────────────
# 1. Inscription (propriétaire)
# ─────────────────────────────────────────────
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: schemas.UserRegister, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    if await user_services.email_taken(db, data.email):
        raise errors.ConflictError("Cet email est déjà utilisé")

    user = await user_services.create_user(db, {
        "first_name": data.first_name.strip(),
        "last_name": data.last_name.strip(),
        "email": data.email,
        "phone": data.phone,
        "role": Role.proprietaire.value,
        "auth_method": AuthMethod.email.value,
        "password_hash": password.hash_password(data.password),
    })
    tokens = await issue_tokens(db, user)
    return auth_response("Compte propriétaire créé avec succès", user, tokens)

# ─────────────────────────────────────────────
# 2. Connexion email / mot de passe
# ─────────────────────────────────────────────
@router.post("/login")
async def login(data: schemas.UserLogin, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    user = await user_services.get_user_by_email(db, data.email)
    if not user or not password.verify_password(data.password.strip(), user.password_hash):
        logger.info(f"❌ Connexion refusée pour {data.email}")
        raise errors.AuthenticationError("Email ou mot de passe incorrect")

    tokens = await issue_tokens(db, user)
    await log_activity(db, user.id, "connexion", {"method": AuthMethod.email.value})
    logger.info(f"✅ Connexion réussie : {user.email} ({user.role.value})")
    return auth_response("Connexion réussie", user, tokens)

# ─────────────────────────────────────────────
# 3. Connexion Google
# ─────────────────────────────────────────────
@router.post("/google")
async def google_login(data: schemas.GoogleLoginRequest, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    info = await verify_google_token(data.id_token)
    google_id = info["sub"]

    user = user_services.to_user(await db[USERS].find_one({"google_id": google_id}))
    if not user:
        user = await user_services.get_user_by_email(db, info["email"])
        if user:
            # Résident pré-enregistré ou compte existant : on rattache le compte Google
            user = await user_services.update_user(db, user.id, {"google_id": google_id})
        else:
            user = await user_services.create_user(db, {
                "first_name": info.get("given_name") or "",
                "last_name": info.get("family_name") or "",
                "email": info["email"],
                "role": Role.proprietaire.value,
                "auth_method": AuthMethod.google.value,
                "google_id": google_id,
            })

    tokens = await issue_tokens(db, user)
    await log_activity(db, user.id, "connexion", {"method": AuthMethod.google.value})
    return auth_response("Connexion Google réussie", user, tokens)

# ─────────────────────────────────────────────
# 4. Rafraîchissement et déconnexion
# ─────────────────────────────────────────────
@router.post("/refresh")
async def refresh(data: schemas.RefreshRequest, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    payload = jwt_handler.decode_token(data.refresh_token, expected_type=jwt_handler.REFRESH)
    if not payload:
        raise errors.AuthenticationError("Refresh token invalide")

    user = await user_services.get_user_by_id(db, payload["sub"])
    if not user or user.refresh_token != data.refresh_token:
        raise errors.AuthenticationError("Refresh token invalide")

    return await issue_tokens(db, user)


@router.post("/logout")
async def logout(current_user: UserInDB = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    await user_services.update_user(db, current_user.id, {"refresh_token": None})
    return {"message": "Déconnexion réussie"}

# ─────────────────────────────────────────────
# 5. Mots de passe
# ─────────────────────────────────────────────
@router.post("/reset-password")
async def first_login_password(
    data: schemas.FirstLoginPasswordRequest,
    current_user: UserInDB = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    """Remplace le mot de passe temporaire lors de la première connexion"""
    if not current_user.first_login:
        raise errors.ValidationError("Cette opération n'est pas nécessaire")

    user = await user_services.update_user(db, current_user.id, {
        "password_hash": password.hash_password(data.new_password),
        "first_login": False,
    })
    return {"message": "Mot de passe mis à jour avec succès", "user": UserOut.from_user(user).model_dump()}


@router.post("/change-password")
async def change_password(
    data: schemas.ChangePasswordRequest,
    current_user: UserInDB = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    if not password.verify_password(data.current_password, current_user.password_hash):
        raise errors.AuthenticationError("Mot de passe actuel incorrect")

    await user_services.update_user(db, current_user.id, {
        "password_hash": password.hash_password(data.new_password),
        "first_login": False,
    })
    return {"message": "Mot de passe modifié avec succès"}


@router.post("/forgot-password")
async def forgot_password(data: schemas.ForgotPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    user = await user_services.get_user_by_email(db, data.email)
    # Même réponse que le compte existe ou non
    if not user:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    temporary_password = password.generate_temporary_password()
    await user_services.update_user(db, user.id, {
        "password_hash": password.hash_password(temporary_password),
        "first_login": True,
        "refresh_token": None,
    })
    sent = await deliver_credentials(user.email, user.phone, user.full_name, temporary_password, reset=True)
    logger.info(f"🔑 Mot de passe temporaire régénéré pour {user.id} (canal={sent.get('channel')})")
    return {"message": FORGOT_PASSWORD_MESSAGE}

# ─────────────────────────────────────────────
# 6. Profil courant et appareil
# ─────────────────────────────────────────────
@router.get("/me")
async def get_me(current_user: UserInDB = Depends(get_current_user)):
    return {"user": UserOut.from_user(current_user).model_dump()}


@router.post("/device-token")
async def set_device_token(
    data: schemas.DeviceTokenRequest,
    current_user: UserInDB = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    await user_services.update_user(db, current_user.id, {"device_token": data.device_token})
    return {"message": "Device token enregistré"}
