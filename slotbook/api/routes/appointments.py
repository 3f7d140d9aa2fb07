# slotbook/api/routes/appointments.py

from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.api.routes.providers import boundary_duration
from slotbook.core.errors import BookingGroupNotFound, StoreUnavailable
from slotbook.crud.appointment import cancel_booking_group, get_booking_group, list_user_appointments
from slotbook.db.session import get_session
from slotbook.schemas.appointment import AppointmentOut, BookingGroupOut, BookingRequest
from slotbook.services.booking import BookingResult, book

router = APIRouter(prefix="/appointments", tags=["appointments"])

# Every outcome carries the same BookingResult body; only the status differs
STATUS_BY_REASON = {
    "committed": 201,
    "conflict": 409,
    "invalid_request": 422,
    "provider_not_found": 404,
    "store_failure": 503,
}


@router.post("", response_model=BookingResult, status_code=201,
             responses={409: {"model": BookingResult}, 422: {"model": BookingResult},
                        404: {"model": BookingResult}, 503: {"model": BookingResult}})
async def book_appointment(payload: BookingRequest, db: AsyncSession = Depends(get_session)):
    result = await book(
        db,
        provider_id=payload.provider_id,
        user_id=payload.user_id,
        day=payload.date,
        start_time=payload.start_time,
        duration_hours=boundary_duration(payload.duration_hours),
    )
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=STATUS_BY_REASON.get(result.reason, 400),
    )


@router.get("", response_model=List[AppointmentOut])
async def get_user_appointments(
    user_id: str = Query(..., description="Whose appointments"),
    active_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
):
    # Sorted by (date, start time) ascending
    return await list_user_appointments(db, user_id, include_inactive=not active_only, limit=limit)


@router.get("/groups/{booking_group_id}", response_model=BookingGroupOut)
async def get_booking(booking_group_id: str, db: AsyncSession = Depends(get_session)):
    rows = await get_booking_group(db, booking_group_id)
    if not rows:
        raise HTTPException(status_code=404, detail=f"Booking {booking_group_id} was not found.")
    return BookingGroupOut.from_rows(rows)


@router.post("/groups/{booking_group_id}/cancel", response_model=BookingGroupOut)
async def cancel_booking(
    booking_group_id: str,
    user_id: Optional[str] = Query(None, description="Only cancel if the booking belongs to this user"),
    db: AsyncSession = Depends(get_session),
):
    try:
        rows = await cancel_booking_group(db, booking_group_id, user_id=user_id)
    except BookingGroupNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
    return BookingGroupOut.from_rows(rows)
