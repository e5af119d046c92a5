"""Droits d'accès aux résidents et aux maisons selon le rôle."""

import pytest

from ecopower.auth.permissions import AccessPolicy
from ecopower.users.models import Role
from ecopower import errors


@pytest.fixture
def policy(db):
    return AccessPolicy(db)


class TestResidentAccess:
    async def test_owner_sees_own_resident(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        resident = await make_resident(owner, await make_house(owner))

        found = await policy.resident_for(owner, resident.id)
        assert str(found["_id"]) == resident.id

    async def test_foreign_resident_is_hidden(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        stranger = await make_user(Role.proprietaire)
        resident = await make_resident(owner, await make_house(owner))

        with pytest.raises(errors.NotFoundError):
            await policy.resident_for(stranger, resident.id)

    async def test_resident_only_sees_self(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        house = await make_house(owner)
        resident = await make_resident(owner, house)
        neighbour = await make_resident(owner, house)

        assert str((await policy.resident_for(resident, resident.id))["_id"]) == resident.id
        with pytest.raises(errors.AuthorizationError):
            await policy.resident_for(resident, neighbour.id)

    async def test_admin_sees_everyone(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        admin = await make_user(Role.admin)
        resident = await make_resident(owner, await make_house(owner))

        assert str((await policy.resident_for(admin, resident.id))["_id"]) == resident.id

    async def test_owner_id_is_not_a_resident(self, policy, make_user):
        owner = await make_user(Role.proprietaire)
        admin = await make_user(Role.admin)
        with pytest.raises(errors.NotFoundError):
            await policy.resident_for(admin, owner.id)

    async def test_invalid_identifier(self, policy, make_user):
        owner = await make_user(Role.proprietaire)
        with pytest.raises(errors.ValidationError):
            await policy.resident_for(owner, "pas-un-id")


class TestHouseAccess:
    async def test_member_resident_sees_house(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        house = await make_house(owner)
        resident = await make_resident(owner, house)

        assert (await policy.house_for(resident, str(house["_id"])))["_id"] == house["_id"]

    async def test_outsiders_do_not_see_house(self, policy, make_user, make_house, make_resident):
        owner = await make_user(Role.proprietaire)
        house = await make_house(owner)
        other_owner = await make_user(Role.proprietaire)
        outsider = await make_resident(other_owner, await make_house(other_owner))

        for caller in (other_owner, outsider):
            with pytest.raises(errors.NotFoundError):
                await policy.house_for(caller, str(house["_id"]))
