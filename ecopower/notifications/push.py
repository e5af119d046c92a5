import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import firebase_admin
from firebase_admin import credentials, messaging, exceptions as firebase_exceptions

from ecopower.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Ecopower"
ANDROID_CHANNEL_ID = "ecopower_default"


@dataclass
class PushResult:
    delivered: bool
    reason: Optional[str] = None
    message_id: Optional[str] = None


class FirebasePushNotifier:
    """Envoi des notifications push via Firebase Cloud Messaging"""

    def __init__(self, credentials_path: Optional[str]):
        self.credentials_path = credentials_path
        self._app: Optional[firebase_admin.App] = None

    @property
    def configured(self) -> bool:
        return bool(self.credentials_path)

    def _get_app(self) -> firebase_admin.App:
        if self._app is None:
            cred = credentials.Certificate(self.credentials_path)
            self._app = firebase_admin.initialize_app(cred, name="ecopower")
            logger.info(f"🔧 Firebase initialisé (projet {self._app.project_id})")
        return self._app

    def _build_message(self, token: str, title: str, body: str, data: Dict[str, str]) -> messaging.Message:
        return messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            token=token,
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(sound="default", channel_id=ANDROID_CHANNEL_ID),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": "10"},
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )

    async def send(self, token: str, body: str, data: Optional[Dict[str, str]] = None,
                   title: str = DEFAULT_TITLE) -> PushResult:
        if not token:
            return PushResult(delivered=False, reason="DEVICE_TOKEN_MISSING")

        if not self.configured:
            logger.info(f"🔔 [SIMULATION] Push ({token[:20]}...) : {body}")
            return PushResult(delivered=False, reason="FIREBASE_NOT_CONFIGURED")

        message = self._build_message(token, title, body, data or {})
        try:
            message_id = await asyncio.to_thread(messaging.send, message, app=self._get_app())
        except messaging.UnregisteredError:
            reason = "Le deviceToken est invalide ou expiré. L'utilisateur doit se reconnecter."
        except messaging.SenderIdMismatchError:
            reason = "Le deviceToken a été généré avec un projet Firebase différent."
        except firebase_exceptions.FirebaseError as e:
            reason = f"{e.code}: {e}"
        else:
            logger.info(f"✅ FCM envoyé avec succès. Message ID: {message_id}")
            return PushResult(delivered=True, message_id=message_id)

        logger.error(f"❌ Erreur FCM : {reason}")
        return PushResult(delivered=False, reason=reason)


push_notifier = FirebasePushNotifier(settings.FIREBASE_CREDENTIALS)


def get_push_notifier() -> FirebasePushNotifier:
    """Dépendance FastAPI : notifier push partagé"""
    return push_notifier
