"""Notifications best effort et transmission des identifiants."""

from ecopower.db.mongo import NOTIFICATIONS
from ecopower.notifications.channels import deliver_credentials
from ecopower.notifications.models import NotificationType
from ecopower.notifications.push import FirebasePushNotifier
from ecopower.users.models import Role
from ecopower.utils.mongodb_utils import to_object_id


class TestSend:
    async def test_push_delivered_and_recorded(self, db, notifications, push, make_user):
        user = await make_user(Role.proprietaire, device_token="device-1")

        result = await notifications.send(user.id, "Bonjour", NotificationType.systeme)

        assert result.delivered
        assert push.sent[0]["token"] == "device-1"
        assert push.sent[0]["data"] == {"userId": user.id, "type": "systeme"}
        stored = await db[NOTIFICATIONS].find_one({"user_id": to_object_id(user.id)})
        assert stored["delivered"] is True
        assert stored["read"] is False

    async def test_missing_device_token(self, db, notifications, push, make_user):
        user = await make_user(Role.resident)

        result = await notifications.send(user.id, "Bonjour")

        assert not result.delivered
        assert result.reason == "DEVICE_TOKEN_MISSING"
        assert push.sent == []
        # L'historique est conservé même sans push
        assert await db[NOTIFICATIONS].count_documents({"user_id": to_object_id(user.id)}) == 1

    async def test_push_failure_is_contained(self, notifications, push, make_user):
        user = await make_user(Role.proprietaire, device_token="device-1")
        push.failing = True

        result = await notifications.send(user.id, "Bonjour")

        assert not result.delivered
        assert result.reason == "Notification non envoyée : FCM indisponible"

    async def test_unknown_user(self, notifications):
        result = await notifications.send("64b7f0c2a1b2c3d4e5f60718", "Bonjour")
        assert result.reason == "USER_NOT_FOUND"


class TestReadState:
    async def test_unread_filter_and_mark_read(self, notifications, make_user):
        user = await make_user(Role.resident)
        for text in ("Un", "Deux", "Trois"):
            await notifications.send(user.id, text)

        unread = await notifications.list_for_user(user.id, unread_only=True)
        assert len(unread) == 3

        assert await notifications.mark_read(user.id, unread[0]["_id"]) == 1
        assert len(await notifications.list_for_user(user.id, unread_only=True)) == 2

        assert await notifications.mark_read(user.id) == 2
        assert await notifications.list_for_user(user.id, unread_only=True) == []
        assert len(await notifications.list_for_user(user.id)) == 3

    async def test_cannot_mark_someone_elses_notification(self, notifications, make_user):
        owner = await make_user(Role.proprietaire)
        other = await make_user(Role.proprietaire)
        await notifications.send(owner.id, "Privé")
        notification = (await notifications.list_for_user(owner.id))[0]

        assert await notifications.mark_read(other.id, notification["_id"]) == 0


class TestFirebaseNotifier:
    async def test_simulated_without_credentials(self):
        result = await FirebasePushNotifier(None).send("device-token-1234567890", "Bonjour")
        assert result.reason == "FIREBASE_NOT_CONFIGURED"

    async def test_empty_token(self):
        result = await FirebasePushNotifier("/chemin/compte.json").send("", "Bonjour")
        assert result.reason == "DEVICE_TOKEN_MISSING"


class TestCredentials:
    async def test_whatsapp_fallback_when_email_unavailable(self):
        result = await deliver_credentials("jean@example.com", "+22670000000", "Jean Dupont", "Tmp12345")
        assert result["success"]
        assert result["channel"] == "whatsapp"

    async def test_no_channel_available(self):
        result = await deliver_credentials("jean@example.com", None, "Jean Dupont", "Tmp12345")
        assert result == {"success": False, "channel": None}
