import logging

from ecopower.config import settings
from ecopower.utils.email import send_email_async
from ecopower.utils.whatsapp import send_credentials_whatsapp

logger = logging.getLogger(__name__)

CREDENTIALS_SUBJECT = "Vos identifiants Ecopower"
RESET_SUBJECT = "Réinitialisation de votre mot de passe Ecopower"


def _credentials_body(full_name: str, email: str, password: str, reset: bool) -> str:
    intro = (
        "Votre mot de passe a été réinitialisé."
        if reset
        else "Un compte résident vient d'être créé pour vous."
    )
    return (
        f"Bonjour {full_name},\n\n{intro}\n\n"
        f"Email : {email}\nMot de passe temporaire : {password}\n\n"
        "Vous devrez le changer lors de votre prochaine connexion."
    )


async def deliver_credentials(email: str, phone: str | None, full_name: str,
                              password: str, reset: bool = False) -> dict:
    """
    Transmet un mot de passe temporaire : email en priorité, WhatsApp en
    secours, puis simple journalisation en développement.

    Ne lève jamais : le résultat indique le canal utilisé.
    """
    subject = RESET_SUBJECT if reset else CREDENTIALS_SUBJECT
    try:
        result = await send_email_async(subject, email, _credentials_body(full_name, email, password, reset))
        if result.get("success"):
            return {**result, "channel": "email"}
    except Exception as e:
        logger.error(f"Erreur lors de l'envoi de l'email à {email}: {e}")

    try:
        result = await send_credentials_whatsapp(phone, email, password)
        if result.get("success"):
            return {**result, "channel": "whatsapp"}
    except Exception as e:
        logger.error(f"Erreur lors de l'envoi WhatsApp fallback à {phone}: {e}")

    if settings.ENVIRONMENT == "development":
        logger.warning(f"🔑 [DEV] Identifiants pour {email} : {password}")
        return {"success": True, "mode": "console", "channel": "log"}
    return {"success": False, "channel": None}
