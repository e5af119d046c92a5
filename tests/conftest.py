import itertools
import os

# Configuration de test, avant tout import de l'application
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ["ENVIRONMENT"] = "test"
for name in ("MAIL_SERVER", "MAIL_USERNAME", "MAIL_PASSWORD", "WHATSAPP_API_URL", "FIREBASE_CREDENTIALS"):
    os.environ.pop(name, None)

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from ecopower.db import mongo
from ecopower.db.mongo import HOUSES
from ecopower.auth.jwt_handler import create_access_token
from ecopower.auth.password import hash_password
from ecopower.houses.models import HouseCreate
from ecopower.houses.services import HouseService
from ecopower.notifications.push import PushResult, get_push_notifier
from ecopower.notifications.services import NotificationService
from ecopower.users.models import Role
from ecopower.users import services as user_services
from ecopower.utils.mongodb_utils import to_object_id
from ecopower.main import app

DEFAULT_PASSWORD = "secret123"

_sequence = itertools.count(1)


class FakePushNotifier:
    """Mémorise les push au lieu de les envoyer à Firebase"""

    def __init__(self):
        self.sent = []
        self.failing = False

    async def send(self, token, body, data=None, title="Ecopower"):
        if self.failing:
            raise RuntimeError("FCM indisponible")
        self.sent.append({"token": token, "body": body, "data": data})
        return PushResult(delivered=True, message_id=f"fake-{len(self.sent)}")


@pytest.fixture
def db(monkeypatch):
    database = AsyncMongoMockClient()["ecopower_test"]
    monkeypatch.setattr(mongo, "db", database)
    return database


@pytest.fixture
async def indexed_db(db):
    await mongo.ensure_indexes(db)
    return db


@pytest.fixture
def push():
    return FakePushNotifier()


@pytest.fixture
def notifications(db, push):
    return NotificationService(db, push)


@pytest.fixture
def make_user(db):
    async def _make(role=Role.proprietaire, email=None, password=DEFAULT_PASSWORD, **fields):
        n = next(_sequence)
        doc = {
            "first_name": f"Prenom{n}",
            "last_name": f"Nom{n}",
            "email": email or f"{role.value}{n}@example.com",
            "phone": f"+2267000{n:04d}",
            "role": role.value,
            "password_hash": hash_password(password),
        }
        doc.update(fields)
        return await user_services.create_user(db, doc)
    return _make


@pytest.fixture
def make_house(db):
    async def _make(owner, tariff_kwh=0.10, name=None):
        data = HouseCreate(name=name or f"Maison {next(_sequence)}", address="Ouagadougou", tariff_kwh=tariff_kwh)
        return await HouseService(db).create(owner, data)
    return _make


@pytest.fixture
def make_resident(db, make_user):
    async def _make(owner, house, **fields):
        resident = await make_user(
            Role.resident,
            owner_id=to_object_id(owner.id),
            house_id=house["_id"],
            **fields,
        )
        await db[HOUSES].update_one(
            {"_id": house["_id"]}, {"$addToSet": {"residents": to_object_id(resident.id)}}
        )
        return resident
    return _make


def auth_headers(user_id, role):
    token = create_access_token({"user_id": str(user_id), "role": getattr(role, "value", role)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db, push):
    app.dependency_overrides[get_push_notifier] = lambda: push
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    return auth_headers
