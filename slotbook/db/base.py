# slotbook/db/base.py

"""
This file imports all the ORM models so Alembic can discover them.
Whenever you add a new model, import it here.
"""
from slotbook.db.models.provider import Provider
from slotbook.db.models.appointment import Appointment, BookingLock
from slotbook.db.session import engine, Base

async def init_db(bind=None):
    """Initialize database by creating all tables"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)