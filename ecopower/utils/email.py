from email.message import EmailMessage
import logging

import aiosmtplib
from ecopower.config import settings

logger = logging.getLogger(__name__)


async def send_email_async(subject: str, email_to: str, body: str) -> dict:
    """
    Envoie un email texte.

    Sans configuration SMTP, l'email est seulement journalisé et le résultat
    porte ``mode="simulation"`` pour que l'appelant puisse basculer sur un
    autre canal.
    """
    if not settings.mail_configured:
        logger.info(f"📧 [SIMULATION] Email à {email_to} : {subject}")
        return {"success": False, "mode": "simulation", "to": email_to}

    message = EmailMessage()
    message["From"] = settings.MAIL_FROM or settings.MAIL_USERNAME
    message["To"] = email_to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(
        message,
        hostname=settings.MAIL_SERVER,
        port=settings.MAIL_PORT,
        username=settings.MAIL_USERNAME,
        password=settings.MAIL_PASSWORD,
        start_tls=True,
    )
    logger.info(f"📧 Email envoyé à {email_to} : {subject}")
    return {"success": True, "mode": "smtp", "to": email_to}
