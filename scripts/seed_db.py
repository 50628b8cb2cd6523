import asyncio
import os
import sys

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from attendly.database import AsyncSessionLocal
from attendly.models.series import Series
from attendly.services.events import EventService
from attendly.services.sanitize import SeriesSanitizeService


async def seed():
    async with AsyncSessionLocal() as session:
        # Check if DB is already seeded
        result = await session.execute(select(Series).limit(1))
        if result.scalars().first():
            print("Database already contains data. Skipping seed.")
            return

        print("Seeding database with a demo series...")

        series = await SeriesSanitizeService(session).create_series(
            "Demo lecture series", "Created by scripts/seed_db.py"
        )
        events = EventService(session)
        rotating = await events.create(
            "Lecture 1 (rotating QR)", series_id=series.id, rotation_interval_seconds=3
        )
        static = await events.create(
            "Lecture 2 (static QR)", series_id=series.id, rotation_enabled=False
        )

        print(f"Added series: {series.name} ({series.id})")
        print(f"Added event:  {rotating.name} ({rotating.id})")
        print(f"Added event:  {static.name} ({static.id})")


if __name__ == "__main__":
    asyncio.run(seed())
