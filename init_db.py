#!/usr/bin/env python3
"""
Database initialization script for local SQLite development
"""

import asyncio
import os
import sys
from datetime import time
from decimal import Decimal
from pathlib import Path


async def init_database():
    """Initialize the database with tables"""
    try:
        from slotbook.db.base import init_db
        from slotbook.db.session import AsyncSessionLocal
        import sqlalchemy as sa

        print("Initializing database...")

        Path("data").mkdir(exist_ok=True)
        await init_db()
        print("Database tables created")

        async with AsyncSessionLocal() as session:
            result = await session.execute(sa.text("SELECT 1"))
            if result.scalar() == 1:
                print("Database connection test passed")
            else:
                print("Database connection test failed")
                return False

    except ImportError as e:
        print(f"Import error: {e}")
        print("Install the project first: pip install -e .")
        return False
    except Exception as e:
        print(f"Database initialization failed: {e}")
        return False

    return True


async def create_sample_data():
    """Seed one demo provider if none exist"""
    from slotbook.crud.provider import create_provider, list_providers
    from slotbook.db.session import AsyncSessionLocal
    from slotbook.schemas.provider import ProviderCreate

    async with AsyncSessionLocal() as session:
        if await list_providers(session, active_only=False, limit=1):
            print("Sample data already exists, skipping creation")
            return True

        provider = await create_provider(session, ProviderCreate(
            name="Dr. Jane Doe",
            service_type="physiotherapy",
            hourly_rate=Decimal("80.00"),
            currency="CAD",
            available_days=[1, 2, 3, 4, 5],
            shift_start=time(9, 0),
            shift_end=time(17, 0),
            slot_minutes=60,
        ))
        print(f"Sample provider created: {provider.id}")
    return True


if __name__ == "__main__":
    print("Slotbook Database Initialization")
    print("=" * 50)

    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./data/slotbook.db")

    success = asyncio.run(init_database())

    if success:
        asyncio.run(create_sample_data())

        print("\nDatabase initialization complete!")
        print("\nNext steps:")
        print("1. Run: uvicorn slotbook.main:app --reload")
        print("2. Test: curl http://localhost:8000/healthz")
    else:
        print("\nDatabase initialization failed!")
        sys.exit(1)
