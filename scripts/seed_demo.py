#!/usr/bin/env python3
"""Seed the database with a demo provider and a few leads for local webhook tests.

Usage:
    python -m scripts.seed_demo
    # or from project root:
    python scripts/seed_demo.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from nexaconnect_billing.billing.models import ProviderModel
from nexaconnect_billing.common.config import get_settings
from nexaconnect_billing.common.database import DatabaseManager
from nexaconnect_billing.leads.models import LeadModel

DEMO_PROVIDER = {
    "id": "p42",
    "user_id": "demo-user",
    "name": "Sunrise Support Services",
    "email": "hello@sunrise-support.example",
}

DEMO_LEADS = [
    {"id": "lead-demo-1", "category": "Daily Living", "unlock_price": 2500},
    {"id": "lead-demo-2", "category": "Therapy Supports", "unlock_price": 3500},
    {"id": "lead-demo-3", "category": None, "unlock_price": None},
]


async def seed_demo() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    async with db.get_session() as session:
        if await session.get(ProviderModel, DEMO_PROVIDER["id"]):
            print(f"  [skip] provider {DEMO_PROVIDER['id']} already exists")
        else:
            session.add(ProviderModel(**DEMO_PROVIDER))
            print(f"  [created] provider {DEMO_PROVIDER['id']} ({DEMO_PROVIDER['name']})")
        await session.flush()

        for seed in DEMO_LEADS:
            if await session.get(LeadModel, seed["id"]):
                print(f"  [skip] lead {seed['id']} already exists")
                continue
            session.add(LeadModel(provider_id=DEMO_PROVIDER["id"], **seed))
            print(f"  [created] lead {seed['id']}")

    await db.close()
    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(seed_demo())
