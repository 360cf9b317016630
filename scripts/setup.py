#!/usr/bin/env python3
"""Setup script for the luxury rentals API: migrate and seed sample inventory."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from sqlalchemy import func, select  # noqa: E402

from luxury_rentals.core.database import async_session_factory, close_db  # noqa: E402
from luxury_rentals.models import InventoryItem, ItemType, StaffMember, StaffRole  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_ITEMS = [
    {
        "item_id": "CAR-FER-001",
        "name": "Ferrari SF90 Stradale",
        "item_type": ItemType.CARS,
        "category": "supercar",
        "brand": "Ferrari",
        "model": "SF90 Stradale",
        "year": 2024,
        "primary_location": "miami",
        "minimum_rental_days": 1,
        "base_price": 250000,
        "security_deposit": 1000000,
    },
    {
        "item_id": "YAC-AZI-001",
        "name": "Azimut Grande 27M",
        "item_type": ItemType.YACHTS,
        "category": "motor-yacht",
        "brand": "Azimut",
        "model": "Grande 27M",
        "year": 2023,
        "primary_location": "monaco",
        "minimum_rental_days": 3,
        "base_price": 1500000,
        "security_deposit": 5000000,
    },
    {
        "item_id": "JET-GUL-001",
        "name": "Gulfstream G650ER",
        "item_type": ItemType.JETS,
        "category": "long-range",
        "brand": "Gulfstream",
        "model": "G650ER",
        "year": 2022,
        "primary_location": "new-york",
        "minimum_rental_days": 1,
        "base_price": 2500000,
        "security_deposit": 10000000,
    },
    {
        "item_id": "PRO-ASP-001",
        "name": "Aspen Mountain Chalet",
        "item_type": ItemType.PROPERTIES,
        "category": "chalet",
        "primary_location": "aspen",
        "minimum_rental_days": 3,
        "base_price": 800000,
        "security_deposit": 2000000,
    },
]


def run_migrations() -> None:
    """Apply Alembic migrations up to head."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Seed inventory and a concierge so the API can be exercised locally."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.scalar(select(func.count()).select_from(InventoryItem))
            if existing:
                logger.info("Sample data already exists, skipping...")
                return

            for item in SAMPLE_ITEMS:
                db.add(InventoryItem(**item))

            db.add(StaffMember(
                email="concierge@example.com",
                first_name="Alex",
                last_name="Morgan",
                role=StaffRole.CONCIERGE,
                preferred_locations=["miami", "monaco", "new-york", "aspen"],
            ))

            await db.commit()
            logger.info(f"Created {len(SAMPLE_ITEMS)} inventory items")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise
        finally:
            await close_db()


def main() -> None:
    """Main setup function."""
    logger.info("Starting luxury rentals API setup...")

    run_migrations()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn luxury_rentals.main:app --reload")


if __name__ == "__main__":
    main()
