"""Formulaire de contact et coordonnées publiques."""

import pytest

from ecopower.config import settings
from ecopower.contact import services
from ecopower.contact.models import ContactRequest
from ecopower.db.mongo import APP_SETTINGS

VALID_CONTACT = {
    "name": "Awa Traoré",
    "email": "awa@example.com",
    "phone": "+226 70 00 00 00",
    "subject": "devis",
    "message": "Je voudrais un devis pour trois compteurs.",
}


@pytest.fixture
def no_contact_env(monkeypatch):
    for name in ("CONTACT_EMAIL", "CONTACT_PHONE", "APP_WEBSITE", "APP_DESCRIPTION"):
        monkeypatch.setattr(settings, name, None)


class TestContactForm:
    def test_message_sent_in_simulation(self, client):
        resp = client.post("/contact", json=VALID_CONTACT)

        assert resp.status_code == 200
        assert resp.json() == {"message": "Message envoyé avec succès", "success": True, "mode": "simulation"}

    def test_no_authentication_required(self, client):
        assert "Authorization" not in client.headers
        assert client.post("/contact", json=VALID_CONTACT).status_code == 200

    @pytest.mark.parametrize("field, value", [
        ("phone", "70-00-00"),
        ("message", "   trop court   "),
        ("email", "pas-un-email"),
        ("name", "   "),
    ])
    def test_invalid_fields_are_rejected(self, client, field, value):
        resp = client.post("/contact", json={**VALID_CONTACT, field: value})
        assert resp.status_code == 422

    def test_missing_field_is_rejected(self, client):
        payload = {k: v for k, v in VALID_CONTACT.items() if k != "subject"}
        assert client.post("/contact", json=payload).status_code == 422

    def test_smtp_failure(self, client, monkeypatch):
        async def failing_send(subject, email_to, body):
            raise ConnectionRefusedError("SMTP injoignable")

        monkeypatch.setattr(services, "send_email_async", failing_send)

        resp = client.post("/contact", json=VALID_CONTACT)

        assert resp.status_code == 502
        assert resp.json()["detail"] == "Erreur lors de l'envoi du message. Veuillez réessayer plus tard."

    async def test_email_goes_to_contact_address(self, monkeypatch):
        sent = []

        async def fake_send(subject, email_to, body):
            sent.append({"subject": subject, "to": email_to, "body": body})
            return {"success": True, "mode": "smtp", "to": email_to}

        monkeypatch.setattr(services, "send_email_async", fake_send)
        monkeypatch.setattr(settings, "CONTACT_EMAIL", "contact@ecopower.bf")

        result = await services.send_contact_message(ContactRequest(**VALID_CONTACT))

        assert result["mode"] == "smtp"
        assert sent[0]["to"] == "contact@ecopower.bf"
        assert sent[0]["subject"] == "[Contact Ecopower] Demande de devis - Awa Traoré"
        assert "awa@example.com" in sent[0]["body"]

    def test_fields_are_trimmed(self):
        data = ContactRequest(**{**VALID_CONTACT, "name": "  Awa  ", "message": "  Bonjour, un devis svp  "})
        assert data.name == "Awa"
        assert data.message == "Bonjour, un devis svp"


class TestAppInfo:
    def test_empty_by_default(self, client, no_contact_env):
        resp = client.get("/app-info")

        assert resp.status_code == 200
        assert resp.json() == {"email": "", "phone": "", "website": "", "description": ""}

    def test_environment_fallback(self, client, no_contact_env, monkeypatch):
        monkeypatch.setattr(settings, "CONTACT_PHONE", "+226 25 00 00 00")

        assert client.get("/app-info").json()["phone"] == "+226 25 00 00 00"

    async def test_database_values_take_precedence(self, db, no_contact_env, monkeypatch):
        monkeypatch.setattr(settings, "CONTACT_EMAIL", "env@ecopower.bf")
        monkeypatch.setattr(settings, "APP_WEBSITE", "https://env.ecopower.bf")
        await db[APP_SETTINGS].insert_one({
            "key": "contact", "email": "contact@ecopower.bf", "website": "", "description": "Énergie partagée",
        })

        info = await services.get_app_info(db)

        assert info.email == "contact@ecopower.bf"
        assert info.website == "https://env.ecopower.bf"
        assert info.description == "Énergie partagée"
        assert info.phone == ""
