# slotbook/schemas/appointment.py

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class BookingRequest(BaseModel):
    provider_id: str = Field(..., examples=["39bc1219-f1ce-482d-93cb-39e5b869ab45"])
    user_id: str = Field(..., min_length=1, max_length=64)
    date: date
    start_time: str = Field(..., description="Provider-local time of day, HH:MM", examples=["14:00"])
    duration_hours: Decimal = Field(..., gt=0, le=24, examples=[1])


class SlotOut(BaseModel):
    slot_time: time
    is_available: bool
    model_config = ConfigDict(from_attributes=True)


class AppointmentOut(BaseModel):
    id: str
    provider_id: str
    user_id: str
    appointment_date: date
    start_time: time
    duration_hours: Decimal
    status: str
    booking_group_id: str
    total_price: Decimal
    currency: str
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BookingGroupOut(BaseModel):
    """One booking as the caller made it, folded back from its slot rows."""

    booking_group_id: str
    provider_id: str
    user_id: str
    appointment_date: date
    start_time: time
    duration_hours: Decimal
    status: str
    total_price: Decimal
    currency: str
    appointments: List[AppointmentOut]

    @classmethod
    def from_rows(cls, rows: Sequence) -> "BookingGroupOut":
        first = rows[0]
        minutes = sum(r.duration_minutes for r in rows)
        statuses = {r.status for r in rows}
        return cls(
            booking_group_id=first.booking_group_id,
            provider_id=first.provider_id,
            user_id=first.user_id,
            appointment_date=first.appointment_date,
            start_time=min(r.start_time for r in rows),
            duration_hours=(Decimal(minutes) / 60).quantize(Decimal("0.01")),
            status=first.status if len(statuses) == 1 else "mixed",
            total_price=sum((r.total_price for r in rows), Decimal("0")),
            currency=first.currency,
            appointments=[AppointmentOut.model_validate(r) for r in rows],
        )
