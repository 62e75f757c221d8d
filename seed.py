"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 drivers and 6 passengers with starting credit balances
  - 6 published rides (mix of seat counts and prices, one priced at the
    commission floor)
"""

import asyncio
from decimal import Decimal

from sqlalchemy import text

from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import RideModel, UserModel
from carpool.domain.enums import RideStatus


DRIVERS = [
    {"name": "Camille Laurent", "email": "camille@example.com", "credits": "20.00"},
    {"name": "Hugo Martin", "email": "hugo@example.com", "credits": "20.00"},
    {"name": "Léa Bernard", "email": "lea@example.com", "credits": "20.00"},
    {"name": "Nathan Petit", "email": "nathan@example.com", "credits": "20.00"},
]

PASSENGERS = [
    {"name": "Inès Moreau", "email": "ines@example.com", "credits": "50.00"},
    {"name": "Lucas Girard", "email": "lucas@example.com", "credits": "35.00"},
    {"name": "Manon Roux", "email": "manon@example.com", "credits": "10.00"},
    {"name": "Théo Fournier", "email": "theo@example.com", "credits": "80.00"},
    {"name": "Chloé Fontaine", "email": "chloe@example.com", "credits": "5.00"},
    {"name": "Jules Lambert", "email": "jules@example.com", "credits": "20.00"},
]

RIDES = [
    # (driver index, vehicle id, seats offered, price per seat)
    (0, 101, 3, "12.00"),
    (0, 101, 1, "10.00"),
    (1, 102, 4, "8.50"),
    (2, 103, 2, "15.00"),
    (3, 104, 3, "2.00"),  # at the commission floor: settles with no payout
    (3, 104, 2, "25.00"),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        drivers = []
        for u in DRIVERS:
            m = UserModel(name=u["name"], email=u["email"], credits=Decimal(u["credits"]))
            session.add(m)
            drivers.append(m)
        for u in PASSENGERS:
            session.add(
                UserModel(name=u["name"], email=u["email"], credits=Decimal(u["credits"]))
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers and {len(PASSENGERS)} passengers")

        # ── Rides ─────────────────────────────────────────────────────
        for driver_idx, vehicle_id, seats, price in RIDES:
            session.add(
                RideModel(
                    driver_id=drivers[driver_idx].id,
                    vehicle_id=vehicle_id,
                    seats_offered=seats,
                    price_per_seat=Decimal(price),
                    status=RideStatus.PUBLISHED,
                    total_net_credits_earned=Decimal("0"),
                )
            )
        await session.flush()
        print(f"  Created {len(RIDES)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
