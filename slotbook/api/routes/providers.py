# slotbook/api/routes/providers.py

from __future__ import annotations
from datetime import date
from decimal import ROUND_CEILING, Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.config import settings
from slotbook.core.errors import InvalidBookingRequest, ProviderNotFound
from slotbook.crud.provider import list_providers, require_provider
from slotbook.db.session import get_session
from slotbook.schemas.appointment import SlotOut
from slotbook.schemas.provider import ProviderOut
from slotbook.services.booking import get_availability

router = APIRouter(prefix="/providers", tags=["providers"])


def boundary_duration(duration_hours: Decimal) -> Decimal:
    """Round up to whole hours when the boundary only speaks hours."""
    if settings.ROUND_DURATION_TO_HOURS:
        return duration_hours.to_integral_value(rounding=ROUND_CEILING)
    return duration_hours


@router.get("", response_model=List[ProviderOut])
async def get_providers(
    db: AsyncSession = Depends(get_session),
    include_inactive: bool = False,
    limit: int = Query(100, ge=1, le=500),
):
    return await list_providers(db, active_only=not include_inactive, limit=limit)


@router.get("/{provider_id}", response_model=ProviderOut)
async def get_provider_profile(provider_id: str, db: AsyncSession = Depends(get_session)):
    try:
        return await require_provider(db, provider_id)
    except ProviderNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/{provider_id}/slots", response_model=List[SlotOut])
async def get_available_slots(
    provider_id: str,
    date: date = Query(..., description="Provider-local ISO date"),
    duration_hours: Decimal = Query(Decimal("1"), gt=0, le=24),
    db: AsyncSession = Depends(get_session),
):
    try:
        return await get_availability(db, provider_id, date, boundary_duration(duration_hours))
    except ProviderNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidBookingRequest as e:
        raise HTTPException(status_code=422, detail=e.message)
