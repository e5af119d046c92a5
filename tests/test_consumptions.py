"""Relevés de consommation : calcul, quota mensuel, droits et alertes."""

import asyncio
from types import SimpleNamespace

import pytest

from ecopower.consumptions.models import ConsumptionCreate, ConsumptionUpdate
from ecopower.consumptions.services import ConsumptionService
from ecopower.db.mongo import CONSUMPTIONS, HOUSES, READING_QUOTAS
from ecopower.users.models import Role
from ecopower import errors


def reading(resident, house, previous, current, month=3, year=2025):
    return ConsumptionCreate(
        resident_id=resident.id,
        house_id=str(house["_id"]),
        previous_index=previous,
        current_index=current,
        month=month,
        year=year,
    )


@pytest.fixture
async def ctx(indexed_db, notifications, make_user, make_house, make_resident):
    owner = await make_user(Role.proprietaire)
    house = await make_house(owner, tariff_kwh=0.10)
    resident = await make_resident(owner, house, device_token="device-resident")
    return SimpleNamespace(
        db=indexed_db,
        owner=owner,
        house=house,
        resident=resident,
        service=ConsumptionService(indexed_db, notifications),
    )


class TestRecord:
    async def test_amount_is_kwh_times_house_tariff(self, ctx):
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))

        assert consumption["kwh"] == 50
        assert consumption["amount"] == 50 * 0.10
        assert consumption["status"] == "non_facturee"
        assert consumption["reading_date"] is not None

    async def test_amount_is_not_rounded(self, ctx):
        await ctx.db[HOUSES].update_one({"_id": ctx.house["_id"]}, {"$set": {"tariff_kwh": 0.1740}})

        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 33))

        assert consumption["amount"] == 33 * 0.1740
        stored = await ctx.db[CONSUMPTIONS].find_one({"_id": consumption["_id"]})
        assert stored["amount"] == 33 * 0.1740

    async def test_two_readings_per_month_then_limit(self, ctx):
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))
        second = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 170))
        assert second["kwh"] == 20
        assert second["amount"] == 20 * 0.10

        with pytest.raises(errors.ConflictError) as exc:
            await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 170, 180))
        assert "Limite atteinte" in exc.value.detail
        assert await ctx.db[CONSUMPTIONS].count_documents({}) == 2

    async def test_limit_is_per_month(self, ctx):
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150, month=3))
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 170, month=3))
        april = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 170, 200, month=4))
        assert april["kwh"] == 30

    async def test_concurrent_readings_never_exceed_limit(self, ctx):
        results = await asyncio.gather(
            *[
                ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100 + i, 110 + i))
                for i in range(4)
            ],
            return_exceptions=True,
        )
        conflicts = [r for r in results if isinstance(r, errors.ConflictError)]
        assert len(conflicts) == 2
        assert await ctx.db[CONSUMPTIONS].count_documents({}) == 2

    async def test_current_index_below_previous_is_rejected(self, ctx):
        with pytest.raises(errors.ValidationError):
            await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 100))

        # Aucun créneau consommé par la tentative invalide
        quota = await ctx.db[READING_QUOTAS].find_one({})
        assert quota is None or quota["count"] == 0

    async def test_default_tariff_when_house_has_none(self, ctx):
        await ctx.db[HOUSES].update_one({"_id": ctx.house["_id"]}, {"$set": {"tariff_kwh": None}})
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 100))
        assert consumption["amount"] == 100 * 0.1740

    async def test_resident_records_own_reading(self, ctx):
        consumption = await ctx.service.record(ctx.resident, reading(ctx.resident, ctx.house, 10, 20))
        assert consumption["kwh"] == 10

    async def test_resident_cannot_record_for_someone_else(self, ctx, make_resident):
        neighbour = await make_resident(ctx.owner, ctx.house)
        with pytest.raises(errors.AuthorizationError):
            await ctx.service.record(ctx.resident, reading(neighbour, ctx.house, 10, 20))

    async def test_owner_cannot_record_for_foreign_resident(self, ctx, make_user):
        stranger = await make_user(Role.proprietaire)
        with pytest.raises(errors.NotFoundError):
            await ctx.service.record(stranger, reading(ctx.resident, ctx.house, 10, 20))


class TestUpdateAndDelete:
    async def test_update_recomputes_kwh_and_amount(self, ctx):
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))
        updated = await ctx.service.update(
            ctx.owner, str(consumption["_id"]), ConsumptionUpdate(current_index=180)
        )
        assert updated["kwh"] == 80
        assert updated["amount"] == 80 * 0.10

    async def test_update_rejects_inverted_indexes(self, ctx):
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))
        with pytest.raises(errors.ValidationError):
            await ctx.service.update(ctx.owner, str(consumption["_id"]), ConsumptionUpdate(current_index=90))

    async def test_delete_releases_monthly_slot(self, ctx):
        first = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 170))

        await ctx.service.delete(ctx.owner, str(first["_id"]))
        third = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 170, 175))
        assert third["kwh"] == 5

    async def test_resident_cannot_delete(self, ctx):
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150))
        with pytest.raises(errors.AuthorizationError):
            await ctx.service.delete(ctx.resident, str(consumption["_id"]))


class TestListing:
    async def test_statistics_by_resident(self, ctx):
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150, month=1))
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 180, month=2))

        result = await ctx.service.list_by_resident(ctx.owner, ctx.resident.id)
        stats = result["statistics"]
        assert stats["reading_count"] == 2
        assert stats["total_kwh"] == 80
        assert stats["total_amount"] == 8.0
        assert stats["average_kwh"] == 40

        # Plus récent en premier
        assert [c["month"] for c in result["consumptions"]] == [2, 1]

    async def test_filters_by_period(self, ctx):
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 100, 150, month=1))
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 150, 180, month=2))

        result = await ctx.service.list_by_resident(ctx.owner, ctx.resident.id, year=2025, month=2)
        assert len(result["consumptions"]) == 1

    async def test_statistics_by_house(self, ctx, make_resident):
        other = await make_resident(ctx.owner, ctx.house)
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 10))
        await ctx.service.record(ctx.owner, reading(other, ctx.house, 0, 30))

        result = await ctx.service.list_by_house(ctx.owner, str(ctx.house["_id"]))
        by_resident = {s["resident_id"]: s for s in result["statistics_by_resident"]}
        assert by_resident[ctx.resident.id]["total_kwh"] == 10
        assert by_resident[other.id]["total_kwh"] == 30

    async def test_resident_sees_whole_house(self, ctx, make_resident):
        neighbour = await make_resident(ctx.owner, ctx.house)
        await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 10))
        await ctx.service.record(ctx.owner, reading(neighbour, ctx.house, 0, 30))

        result = await ctx.service.list_my_house(ctx.resident)

        assert len(result["consumptions"]) == 2
        assert result["house"]["_id"] == str(ctx.house["_id"])
        assert {s["resident_id"] for s in result["statistics_by_resident"]} == {ctx.resident.id, neighbour.id}

    async def test_house_listing_requires_resident_with_house(self, ctx, make_user):
        with pytest.raises(errors.AuthorizationError):
            await ctx.service.list_my_house(ctx.owner)

        homeless = await make_user(Role.resident)
        with pytest.raises(errors.NotFoundError):
            await ctx.service.list_my_house(homeless)

    async def test_mine_requires_resident(self, ctx):
        with pytest.raises(errors.AuthorizationError):
            await ctx.service.list_mine(ctx.owner)
        result = await ctx.service.list_mine(ctx.resident)
        assert result["statistics"]["reading_count"] == 0


class TestUnusualConsumption:
    async def test_alert_when_above_recent_average(self, ctx, push):
        for month in (1, 2, 3):
            await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 10, month=month))
        latest = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 50, month=4))

        average = await ctx.service.alert_if_unusual(latest)

        assert average == 10
        assert any("dépasse votre moyenne" in p["body"] for p in push.sent)

    async def test_no_alert_without_history(self, ctx, push):
        first = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 50))
        assert await ctx.service.alert_if_unusual(first) is None
        assert push.sent == []

    async def test_notification_failure_does_not_break_recording(self, ctx, push):
        push.failing = True
        consumption = await ctx.service.record(ctx.owner, reading(ctx.resident, ctx.house, 0, 50))

        await ctx.service.notify_recorded(consumption)

        assert await ctx.db[CONSUMPTIONS].count_documents({"_id": consumption["_id"]}) == 1
