import logging
from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorDatabase

from ecopower.config import settings
from ecopower.contact.models import AppInfo, ContactRequest
from ecopower.db.mongo import APP_SETTINGS
from ecopower.utils.email import send_email_async
from ecopower import errors

logger = logging.getLogger(__name__)

CONTACT_SETTINGS_KEY = "contact"


def contact_recipient():
    return settings.CONTACT_EMAIL or settings.MAIL_USERNAME


def build_contact_email(data: ContactRequest) -> Dict[str, str]:
    body = (
        f"Nouveau message depuis le formulaire de contact\n\n"
        f"Nom : {data.name}\n"
        f"Email : {data.email}\n"
        f"Téléphone : {data.phone}\n"
        f"Sujet : {data.subject_label}\n\n"
        f"{data.message}\n"
    )
    return {"subject": f"[Contact Ecopower] {data.subject_label} - {data.name}", "body": body}


async def send_contact_message(data: ContactRequest) -> Dict[str, Any]:
    """
    Transmet un message du site public à l'adresse de contact.

    Sans SMTP, l'envoi simulé compte comme un succès.

    Raises:
        errors.DependencyError: si le serveur SMTP refuse l'envoi
    """
    email = build_contact_email(data)
    try:
        result = await send_email_async(email["subject"], contact_recipient(), email["body"])
    except Exception as e:
        logger.error(f"❌ [CONTACT] Erreur lors de l'envoi : {e}")
        raise errors.DependencyError("Erreur lors de l'envoi du message. Veuillez réessayer plus tard.")

    if not result["success"] and result["mode"] != "simulation":
        raise errors.DependencyError("Erreur lors de l'envoi du message. Veuillez réessayer plus tard.")

    logger.info(f"✅ [CONTACT] Message de {data.email} ({data.subject}) transmis, mode={result['mode']}")
    return {"message": "Message envoyé avec succès", "success": True, "mode": result["mode"]}


async def get_app_info(db: AsyncIOMotorDatabase) -> AppInfo:
    """Coordonnées publiques : valeurs en base, sinon variables d'environnement"""
    try:
        stored = await db[APP_SETTINGS].find_one({"key": CONTACT_SETTINGS_KEY}) or {}
    except Exception as e:
        logger.error(f"Lecture des informations de contact échouée : {e}")
        stored = {}

    return AppInfo(
        email=stored.get("email") or settings.CONTACT_EMAIL or "",
        phone=stored.get("phone") or settings.CONTACT_PHONE or "",
        website=stored.get("website") or settings.APP_WEBSITE or "",
        description=stored.get("description") or settings.APP_DESCRIPTION or "",
    )
