from scripts.create_admin import create_admin
from ecopower.db.mongo import USERS


class TestCreateAdmin:
    async def test_single_admin(self, db):
        assert await create_admin("Admin@Example.com", "secret123") is True
        assert await create_admin("autre@example.com", "secret123") is False

        admins = await db[USERS].find({"role": "admin"}).to_list(length=None)
        assert [a["email"] for a in admins] == ["admin@example.com"]
