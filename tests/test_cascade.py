"""Suppressions en cascade : aucun document orphelin ne doit subsister."""

import pytest

from ecopower.admin.cascade import DeletionCoordinator
from ecopower.consumptions.models import ConsumptionCreate
from ecopower.consumptions.services import ConsumptionService
from ecopower.db.mongo import (
    USERS, HOUSES, CONSUMPTIONS, INVOICES, MESSAGES, NOTIFICATIONS, LOGS, READING_QUOTAS,
)
from ecopower.invoices.models import InvoiceGenerate
from ecopower.invoices.services import InvoiceService
from ecopower.messages.models import MessageCreate
from ecopower.messages.services import MessageService
from ecopower.users.models import Role
from ecopower.utils.mongodb_utils import to_object_id
from ecopower import errors


@pytest.fixture
def populate(indexed_db, notifications, make_user, make_house, make_resident):
    """Crée un propriétaire avec une maison, un résident, un relevé facturé et des messages"""
    consumptions = ConsumptionService(indexed_db, notifications)
    invoices = InvoiceService(indexed_db, notifications)
    messages = MessageService(indexed_db, notifications)

    async def _populate():
        owner = await make_user(Role.proprietaire)
        house = await make_house(owner)
        resident = await make_resident(owner, house)
        await consumptions.record(owner, ConsumptionCreate(
            resident_id=resident.id, house_id=str(house["_id"]),
            previous_index=0, current_index=40, month=1, year=2025,
        ))
        await invoices.generate(owner, resident.id, InvoiceGenerate(month=1, year=2025))
        await messages.create(owner, MessageCreate(house_id=str(house["_id"]), content="Coupure prévue demain"))
        await messages.create(resident, MessageCreate(
            house_id=str(house["_id"]), receiver_id=owner.id, content="Bien noté"
        ))
        await notifications.send(resident.id, "Bienvenue")
        return owner, house, resident

    return _populate


async def count_referencing(db, user_ids, house_ids):
    user_ids = [to_object_id(u) for u in user_ids]
    by_user = {"$in": user_ids}
    by_house = {"$in": house_ids}
    return {
        "users": await db[USERS].count_documents({"_id": by_user}),
        "houses": await db[HOUSES].count_documents({"$or": [{"_id": by_house}, {"owner_id": by_user}]}),
        "consumptions": await db[CONSUMPTIONS].count_documents(
            {"$or": [{"resident_id": by_user}, {"house_id": by_house}]}
        ),
        "invoices": await db[INVOICES].count_documents(
            {"$or": [{"resident_id": by_user}, {"house_id": by_house}]}
        ),
        "quotas": await db[READING_QUOTAS].count_documents(
            {"$or": [{"resident_id": by_user}, {"house_id": by_house}]}
        ),
        "messages": await db[MESSAGES].count_documents(
            {"$or": [{"sender_id": by_user}, {"receiver_id": by_user}, {"house_id": by_house}]}
        ),
        "notifications": await db[NOTIFICATIONS].count_documents({"user_id": by_user}),
        "logs": await db[LOGS].count_documents({"user_id": by_user}),
    }


class TestOwnerCascade:
    async def test_owner_deletion_leaves_no_orphans(self, indexed_db, populate):
        owner, house, resident = await populate()
        other_owner, other_house, other_resident = await populate()

        stats = await DeletionCoordinator(indexed_db).delete_user(owner.id)

        remaining = await count_referencing(indexed_db, [owner.id, resident.id], [house["_id"]])
        assert all(count == 0 for count in remaining.values()), remaining
        assert stats["users"] == 2
        assert stats["houses"] == 1
        assert stats["invoices"] == 1

        untouched = await count_referencing(
            indexed_db, [other_owner.id, other_resident.id], [other_house["_id"]]
        )
        assert untouched["users"] == 2
        assert untouched["consumptions"] == 1
        assert untouched["invoices"] == 1
        assert untouched["messages"] == 2

    async def test_deletion_can_be_replayed(self, indexed_db, populate):
        owner, house, resident = await populate()
        coordinator = DeletionCoordinator(indexed_db)
        purge = coordinator._purge_user_traces
        calls = []

        async def interrupted_purge(user_ids):
            calls.append(user_ids)
            if len(calls) == 1:
                raise RuntimeError("connexion perdue")
            return await purge(user_ids)

        coordinator._purge_user_traces = interrupted_purge

        with pytest.raises(RuntimeError):
            await coordinator.delete_user(owner.id)
        # Arrêt au milieu : la racine existe encore
        assert await indexed_db[USERS].count_documents({"_id": to_object_id(owner.id)}) == 1

        await coordinator.delete_user(owner.id)

        remaining = await count_referencing(indexed_db, [owner.id, resident.id], [house["_id"]])
        assert all(count == 0 for count in remaining.values()), remaining
        with pytest.raises(errors.NotFoundError):
            await coordinator.delete_user(owner.id)

    async def test_users_referencing_owner_are_released(self, indexed_db, populate, make_user):
        owner, _, _ = await populate()
        partner = await make_user(Role.proprietaire, owner_id=to_object_id(owner.id))

        await DeletionCoordinator(indexed_db).delete_user(owner.id)

        kept = await indexed_db[USERS].find_one({"_id": to_object_id(partner.id)})
        assert kept is not None
        assert kept["owner_id"] is None


class TestResidentCascade:
    async def test_resident_deletion(self, indexed_db, populate):
        owner, house, resident = await populate()

        await DeletionCoordinator(indexed_db).delete_resident(resident.id, owner_id=owner.id)

        remaining = await count_referencing(indexed_db, [resident.id], [])
        assert all(count == 0 for count in remaining.values()), remaining
        stored_house = await indexed_db[HOUSES].find_one({"_id": house["_id"]})
        assert stored_house["residents"] == []
        assert await indexed_db[USERS].count_documents({"_id": to_object_id(owner.id)}) == 1

    async def test_owner_restricted_to_own_residents(self, indexed_db, populate):
        _, _, resident = await populate()
        stranger, _, _ = await populate()

        with pytest.raises(errors.NotFoundError):
            await DeletionCoordinator(indexed_db).delete_resident(resident.id, owner_id=stranger.id)


class TestHouseDeletion:
    async def test_residents_are_detached(self, indexed_db, populate):
        owner, house, resident = await populate()

        stats = await DeletionCoordinator(indexed_db).delete_house(house["_id"], owner_id=owner.id)

        assert stats == {"consumptions": 1, "invoices": 1, "messages": 2, "houses": 1}
        assert await indexed_db[MESSAGES].count_documents({"house_id": house["_id"]}) == 0
        kept = await indexed_db[USERS].find_one({"_id": to_object_id(resident.id)})
        assert kept is not None
        assert kept["house_id"] is None


class TestAdminDeletion:
    async def test_last_admin_is_protected(self, indexed_db, make_user):
        admin = await make_user(Role.admin)
        with pytest.raises(errors.ConflictError):
            await DeletionCoordinator(indexed_db).delete_user(admin.id)

    async def test_admin_deleted_when_another_remains(self, indexed_db, make_user):
        admin = await make_user(Role.admin)
        await make_user(Role.admin)

        stats = await DeletionCoordinator(indexed_db).delete_user(admin.id)

        assert stats["users"] == 1
        assert await indexed_db[USERS].count_documents({"role": "admin"}) == 1
