import asyncio
import logging
import uuid
from datetime import datetime

import requests

from ecopower.config import settings

logger = logging.getLogger(__name__)

WHATSAPP_TIMEOUT_SECONDS = 10


def _post_message(phone: str, text: str) -> requests.Response:
    return requests.post(
        settings.WHATSAPP_API_URL,
        headers={"Authorization": f"Bearer {settings.WHATSAPP_API_TOKEN}"},
        json={"to": phone, "type": "text", "text": {"body": text}},
        timeout=WHATSAPP_TIMEOUT_SECONDS,
    )


async def send_whatsapp_message(phone: str, text: str) -> dict:
    """
    Envoie un message WhatsApp via le fournisseur configuré.

    Sans ``WHATSAPP_API_URL`` le message est simulé (journalisé).
    """
    if not phone:
        return {"success": False, "error": "PHONE_MISSING"}

    if not settings.WHATSAPP_API_URL:
        logger.info(f"📱 [SIMULATION] WhatsApp à {phone} : {text}")
        return {
            "success": True,
            "mode": "simulation",
            "messageId": f"msg_{uuid.uuid4().hex[:12]}",
            "sentAt": datetime.utcnow(),
            "to": phone,
        }

    response = await asyncio.to_thread(_post_message, phone, text)
    if response.status_code >= 400:
        logger.warning(f"📱 Échec WhatsApp ({response.status_code}) pour {phone}")
        return {"success": False, "error": f"HTTP {response.status_code}", "to": phone}

    logger.info(f"📱 WhatsApp envoyé à {phone}")
    return {"success": True, "mode": "api", "sentAt": datetime.utcnow(), "to": phone}


async def send_invoice_whatsapp(phone: str, number: str, amount: float, due_date: datetime) -> dict:
    text = (
        f"Ecopower : nouvelle facture {number} de {amount:.2f} FCFA. "
        f"Échéance le {due_date.strftime('%d/%m/%Y')}."
    )
    return await send_whatsapp_message(phone, text)


async def send_credentials_whatsapp(phone: str, email: str, password: str) -> dict:
    text = (
        "Bienvenue sur Ecopower !\n\n"
        f"Vos identifiants de connexion :\nEmail: {email}\nMot de passe temporaire: {password}\n\n"
        "Veuillez changer votre mot de passe lors de votre première connexion."
    )
    return await send_whatsapp_message(phone, text)
