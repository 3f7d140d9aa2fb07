# slotbook/crud/appointment.py
"""
The booking ledger: the only place appointment rows are written.

reserve() is the single booking write path. It runs one transaction that
first takes the (provider, date) lock row, then re-reads the committed
intervals and inserts only if the requested interval is still free.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Optional, Sequence
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import DBAPIError, IntegrityError

from slotbook.core.calendar import (
    Hours,
    Interval,
    ProviderCalendar,
    overlaps_any,
    split_into_slots,
    to_minutes,
    validate_booking,
)
from slotbook.core.config import settings
from slotbook.core.errors import BookingGroupNotFound, InvalidBookingRequest, StoreUnavailable, log_error
from slotbook.core.logging import get_logger
from slotbook.db.models.appointment import ACTIVE_STATUSES, Appointment, BookingLock

logger = get_logger(__name__)

CENT = Decimal("0.01")


class ReservationStatus(str, Enum):
    COMMITTED = "committed"
    CONFLICT = "conflict"
    INVALID_REQUEST = "invalid_request"
    STORE_FAILURE = "store_failure"


@dataclass
class Reservation:
    status: ReservationStatus
    booking_group_id: Optional[str] = None
    appointments: list[Appointment] = field(default_factory=list)
    detail: str = ""

    @property
    def committed(self) -> bool:
        return self.status is ReservationStatus.COMMITTED


def _lock_statement(dialect_name: str, provider_id: str, day: date):
    if dialect_name == "postgresql":
        insert = postgresql.insert
    elif dialect_name == "sqlite":
        insert = sqlite.insert
    else:
        raise RuntimeError(f"Booking ledger does not support the {dialect_name!r} dialect")

    stmt = insert(BookingLock).values(provider_id=provider_id, lock_date=day, version=1)
    return stmt.on_conflict_do_update(
        index_elements=[BookingLock.provider_id, BookingLock.lock_date],
        set_={"version": BookingLock.version + 1},
    )


async def lock_provider_day(db: AsyncSession, provider_id: str, day: date) -> None:
    """
    Take the exclusive (provider, date) lock for the rest of the current
    transaction. Must be the first write of the transaction.
    """
    dialect_name = db.get_bind().dialect.name
    await db.execute(_lock_statement(dialect_name, provider_id, day))


async def list_committed_intervals(db: AsyncSession, provider_id: str, day: date) -> list[Interval]:
    """Pending/confirmed intervals for a provider and date. Takes no locks."""
    q = (
        sa.select(Appointment.start_time, Appointment.duration_minutes)
        .where(
            Appointment.provider_id == provider_id,
            Appointment.appointment_date == day,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.start_time.asc())
    )
    res = await db.execute(q)
    intervals = []
    for start_time, minutes in res.all():
        begin = to_minutes(start_time)
        intervals.append(Interval(begin, begin + minutes))
    return intervals


def split_price(total: Decimal, parts: int) -> list[Decimal]:
    """Split a price across rows; the last row absorbs the cent remainder."""
    total = Decimal(total).quantize(CENT)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [total - share * (parts - 1)]


async def _rollback_quietly(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except (DBAPIError, OSError) as e:
        logger.warning("rollback_failed", error=str(e))


async def reserve(
    db: AsyncSession,
    *,
    calendar: ProviderCalendar,
    day: date,
    start: time,
    duration_hours: Hours,
    user_id: str,
    total_price: Decimal,
    currency: str,
    status: Optional[str] = None,
    today: Optional[date] = None,
) -> Reservation:
    """
    Atomically reserve [start, start + duration) for the provider on `day`.

    At most one of any set of concurrent callers with overlapping intervals
    for the same provider and date gets COMMITTED; the rest get CONFLICT.
    A STORE_FAILURE leaves nothing behind.
    """
    try:
        requested = validate_booking(calendar, day, start, duration_hours, today=today)
    except InvalidBookingRequest as e:
        return Reservation(ReservationStatus.INVALID_REQUEST, detail=e.message)

    provider_id = calendar.provider_id
    status = status or settings.DEFAULT_BOOKING_STATUS
    if status not in ACTIVE_STATUSES:
        return Reservation(ReservationStatus.INVALID_REQUEST, detail=f"Cannot book with status {status!r}.")

    try:
        await lock_provider_day(db, provider_id, day)

        committed = await list_committed_intervals(db, provider_id, day)
        if overlaps_any(requested, committed):
            await db.rollback()
            logger.info(
                "reserve_conflict",
                provider_id=provider_id,
                date=day.isoformat(),
                start=start.strftime("%H:%M"),
            )
            return Reservation(ReservationStatus.CONFLICT, detail="Requested interval is already booked.")

        booking_group_id = str(uuid.uuid4())
        slot_starts = split_into_slots(requested, calendar.slot_minutes)
        prices = split_price(total_price, len(slot_starts))
        rows = [
            Appointment(
                provider_id=provider_id,
                user_id=user_id,
                appointment_date=day,
                start_time=slot_start,
                duration_minutes=calendar.slot_minutes,
                status=status,
                booking_group_id=booking_group_id,
                total_price=price,
                currency=currency,
            )
            for slot_start, price in zip(slot_starts, prices)
        ]
        db.add_all(rows)
        await db.commit()

    except IntegrityError as e:
        # The active-slot unique index caught a concurrent insert
        await _rollback_quietly(db)
        logger.info("reserve_conflict_constraint", provider_id=provider_id, error=str(e.orig))
        return Reservation(ReservationStatus.CONFLICT, detail="Requested interval is already booked.")
    except (DBAPIError, OSError) as e:
        await _rollback_quietly(db)
        log_error(e, {"operation": "reserve", "provider_id": provider_id})
        return Reservation(ReservationStatus.STORE_FAILURE, detail=str(e)[:200])

    logger.info(
        "reserve_committed",
        provider_id=provider_id,
        booking_group_id=booking_group_id,
        date=day.isoformat(),
        start=start.strftime("%H:%M"),
        rows=len(rows),
    )
    return Reservation(ReservationStatus.COMMITTED, booking_group_id=booking_group_id, appointments=rows)


async def get_booking_group(db: AsyncSession, booking_group_id: str) -> Sequence[Appointment]:
    q = (
        sa.select(Appointment)
        .where(Appointment.booking_group_id == booking_group_id)
        .order_by(Appointment.start_time.asc())
        .execution_options(populate_existing=True)
    )
    res = await db.execute(q)
    return res.scalars().all()


async def cancel_booking_group(
    db: AsyncSession,
    booking_group_id: str,
    *,
    user_id: Optional[str] = None,
) -> Sequence[Appointment]:
    """
    Cancel every pending/confirmed row of a booking group. Idempotent:
    already cancelled or completed rows are left as they are.
    """
    rows = await get_booking_group(db, booking_group_id)
    if not rows or (user_id is not None and any(r.user_id != user_id for r in rows)):
        raise BookingGroupNotFound(booking_group_id)

    provider_id = rows[0].provider_id
    day = rows[0].appointment_date
    try:
        await lock_provider_day(db, provider_id, day)
        rows = await get_booking_group(db, booking_group_id)
        changed = 0
        for row in rows:
            if row.is_active:
                row.mark_as_cancelled()
                changed += 1
        await db.commit()
    except (DBAPIError, OSError) as e:
        await _rollback_quietly(db)
        log_error(e, {"operation": "cancel", "provider_id": provider_id})
        raise StoreUnavailable("Could not cancel the booking right now. Please try again.") from e

    logger.info("booking_cancelled", booking_group_id=booking_group_id, rows=changed)
    return rows


async def list_user_appointments(
    db: AsyncSession,
    user_id: str,
    *,
    include_inactive: bool = True,
    limit: int = 100,
) -> Sequence[Appointment]:
    """A user's appointments ordered by (date, start time), both ascending."""
    q = sa.select(Appointment).where(Appointment.user_id == user_id)
    if not include_inactive:
        q = q.where(Appointment.status.in_(ACTIVE_STATUSES))
    q = q.order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc()).limit(limit)
    res = await db.execute(q)
    return res.scalars().all()


async def list_provider_appointments(
    db: AsyncSession,
    provider_id: str,
    day: date,
    *,
    active_only: bool = False,
) -> Sequence[Appointment]:
    q = sa.select(Appointment).where(
        Appointment.provider_id == provider_id,
        Appointment.appointment_date == day,
    )
    if active_only:
        q = q.where(Appointment.status.in_(ACTIVE_STATUSES))
    q = q.order_by(Appointment.start_time.asc())
    res = await db.execute(q)
    return res.scalars().all()


async def purge_appointments(db: AsyncSession, provider_id: str, day: date) -> int:
    """Administrative purge of every row for a provider and date. Returns rows deleted."""
    res = await db.execute(
        sa.delete(Appointment).where(
            Appointment.provider_id == provider_id,
            Appointment.appointment_date == day,
        )
    )
    await db.commit()
    logger.warning("appointments_purged", provider_id=provider_id, date=day.isoformat(), rows=res.rowcount)
    return res.rowcount
