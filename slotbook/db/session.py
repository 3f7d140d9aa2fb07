# slotbook/db/session.py

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from slotbook.core.config import settings


def build_engine(url: str) -> AsyncEngine:
    """Async engine with the pool/driver options every deployment shares."""
    connect_args = {}
    if url.startswith("sqlite"):
        # Writers wait on SQLite's database lock instead of failing straight away
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT
    return create_async_engine(
        url,
        pool_pre_ping=True,   # avoids stale connection errors
        connect_args=connect_args,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,  # keep objects usable after commit
        class_=AsyncSession,
    )


# 1) Engine: one per app
engine = build_engine(settings.async_db_uri)

# 2) Session factory: creates short-lived sessions per request
AsyncSessionLocal = build_sessionmaker(engine)

# 3) Declarative Base: all models inherit from this
class Base(DeclarativeBase):
    pass

# 4) FastAPI dependency: yields a session and closes it safely
async def get_session():
    async with AsyncSessionLocal() as session:
        yield session
