"""
Passe en retard les factures échues et prévient les résidents.

À lancer périodiquement (cron) : python scripts/check_overdue.py
"""
import asyncio
import logging

from ecopower.db import mongo
from ecopower.invoices.services import flag_overdue_invoices
from ecopower.notifications.push import push_notifier
from ecopower.notifications.services import NotificationService

logging.basicConfig(level=logging.INFO)


async def main():
    result = await flag_overdue_invoices(mongo.db, NotificationService(mongo.db, push_notifier))
    print(f"Factures passées en retard : {result['flagged']}")


if __name__ == "__main__":
    asyncio.run(main())
