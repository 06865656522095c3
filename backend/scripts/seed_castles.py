"""Seed the default castle fleet."""
from __future__ import annotations

import asyncio

from sqlalchemy import func, select

from castle_bookings.db.session import get_sessionmaker
from castle_bookings.models.castle import Castle

DEFAULT_FLEET: list[tuple[str, str, int]] = [
    ("Princess Palace", "Themed", 12000),
    ("Jungle Adventure", "Themed", 12000),
    ("Pirate Ship", "Themed", 14000),
    ("Mega Slide Combo", "Combo", 18000),
    ("Toddler Town", "Toddler", 8500),
]


async def seed_castles(fleet: list[tuple[str, str, int]] = DEFAULT_FLEET) -> None:
    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        created = 0
        for name, castle_type, price_pence in fleet:
            existing = await session.execute(
                select(Castle).where(func.lower(Castle.name) == name.lower())
            )
            if existing.scalar_one_or_none() is None:
                session.add(Castle(name=name, castle_type=castle_type, price_pence=price_pence))
                created += 1
        if created:
            await session.commit()
        print(f"Seeded {created} castle(s).")


def main() -> None:
    asyncio.run(seed_castles())


if __name__ == "__main__":
    main()
