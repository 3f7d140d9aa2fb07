# slotbook/crud/provider.py
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.calendar import ProviderCalendar
from slotbook.core.errors import ProviderNotFound
from slotbook.db.models.provider import Provider
from slotbook.schemas.provider import ProviderCreate


async def get_provider(db: AsyncSession, provider_id: str) -> Optional[Provider]:
    return await db.get(Provider, provider_id)


async def require_provider(db: AsyncSession, provider_id: str) -> Provider:
    provider = await get_provider(db, provider_id)
    if provider is None:
        raise ProviderNotFound(provider_id)
    return provider


async def get_calendar(db: AsyncSession, provider_id: str) -> ProviderCalendar:
    provider = await require_provider(db, provider_id)
    return provider.to_calendar()


async def list_providers(
    db: AsyncSession, *, active_only: bool = True, limit: int = 100, offset: int = 0
) -> Sequence[Provider]:
    stmt = sa.select(Provider)
    if active_only:
        stmt = stmt.where(Provider.is_active.is_(True))
    stmt = stmt.order_by(Provider.name.asc()).offset(offset).limit(limit)
    res = await db.execute(stmt)
    return res.scalars().all()


async def create_provider(db: AsyncSession, data: ProviderCreate) -> Provider:
    """
    Administrative seeding only; profile management lives outside this service.
    The calendar is validated before anything is written.
    """
    obj = Provider(**data.model_dump(exclude_none=True))
    obj.to_calendar()
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj
