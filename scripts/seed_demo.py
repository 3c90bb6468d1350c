"""
Seed a demo Safe Circle.

Creates a traveller and two guardians in circle DEMO01 and prints a
bearer token for each, so the API can be exercised without the auth
service. Run after the database is reachable.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from saferoute.app.core.jwt import create_access_token
from saferoute.app.db.session import AsyncSessionLocal, engine, Base
from saferoute.app.models.safe_circle import SafeCircle, CircleMember
from saferoute.app.models.user import User

import saferoute.app.main  # noqa: F401  registers every model on Base

GROUP_CODE = "DEMO01"

DEMO_USERS = [
    ("demo_traveller", "Asha", "+15550100001"),
    ("demo_guardian_1", "Ravi", "+15550100002"),
    ("demo_guardian_2", "Meera", "+15550100003"),
]


async def seed_demo():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Seeding demo circle...")

        result = await db.execute(select(SafeCircle).where(SafeCircle.group_code == GROUP_CODE))
        if result.scalar_one_or_none():
            print(f"ℹ️  Circle {GROUP_CODE} already exists, skipping seeding")
        else:
            for user_id, name, phone in DEMO_USERS:
                db.add(User(id=user_id, name=name, phone=phone, group_code=GROUP_CODE))
            await db.flush()
            db.add(SafeCircle(group_code=GROUP_CODE, name="Demo Circle", creator_id=DEMO_USERS[0][0]))
            for user_id, _, _ in DEMO_USERS:
                db.add(CircleMember(group_code=GROUP_CODE, user_id=user_id))
            await db.commit()
            print(f"✅ Created circle {GROUP_CODE} with {len(DEMO_USERS)} members")

    print("\nBearer tokens:")
    for user_id, name, _ in DEMO_USERS:
        print(f"  - {name:<6} {create_access_token({'sub': user_id})}")


if __name__ == "__main__":
    asyncio.run(seed_demo())
