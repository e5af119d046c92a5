"""
Crée le compte administrateur unique.

Usage : python scripts/create_admin.py <email> <mot_de_passe> [prénom] [nom]
"""
import asyncio
import sys

from ecopower.db import mongo
from ecopower.auth.password import hash_password
from ecopower.users.models import Role
from ecopower.users import services as user_services


async def create_admin(email: str, password: str, first_name: str = "Admin", last_name: str = "Ecopower") -> bool:
    await mongo.ensure_indexes(mongo.db)
    if await mongo.db[mongo.USERS].find_one({"role": Role.admin.value}, {"_id": 1}):
        print("Un administrateur existe déjà")
        return False

    admin = await user_services.create_user(mongo.db, {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "role": Role.admin.value,
        "password_hash": hash_password(password),
    })
    print(f"Administrateur créé : {admin.email} (id={admin.id})")
    return True


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    created = asyncio.run(create_admin(*sys.argv[1:5]))
    sys.exit(0 if created else 1)
