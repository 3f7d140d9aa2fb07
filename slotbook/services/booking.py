# slotbook/services/booking.py
from __future__ import annotations

import asyncio
from datetime import date, time
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import DBAPIError

from slotbook.core.calendar import (
    WEEKDAY_NAMES,
    Hours,
    duration_minutes,
    is_date_bookable,
    parse_time,
    validate_booking,
)
from slotbook.core.config import settings
from slotbook.core.errors import (
    InvalidBookingRequest,
    InvalidCalendar,
    ProviderNotFound,
    log_error,
)
from slotbook.core.logging import get_logger, set_booking_context
from slotbook.core.metrics import booking_metrics
from slotbook.crud.appointment import Reservation, ReservationStatus, list_committed_intervals, reserve
from slotbook.crud.provider import get_calendar, require_provider
from slotbook.services.availability import Slot, compute_availability

logger = get_logger(__name__)

CONFLICT_MESSAGE = "This time slot is no longer available. Please choose another slot."
STORE_FAILURE_MESSAGE = "We couldn't complete your booking right now. Please try again in a moment."


# ---------- Public contract returned to the route ----------

class BookingResult(BaseModel):
    success: bool = Field(..., description="Whether the booking was committed")
    message: str = Field(..., description="Human-readable outcome")
    booking_group_id: Optional[str] = Field(None, description="Shared by every row of the booking")
    reason: str = Field(..., description="committed | conflict | invalid_request | provider_not_found | store_failure")
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None
    attempts: int = Field(0, description="Reserve transactions tried")


# ---------- Internal helpers ----------

def _format_duration(minutes: int) -> str:
    hours, rest = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if rest:
        parts.append(f"{rest} minutes")
    return " ".join(parts)


def _compose_success_message(provider_name: str, day: date, start: time, minutes: int, group_id: str) -> str:
    when = f"{WEEKDAY_NAMES[day.isoweekday()]}, {day:%B %d} at {start:%H:%M}"
    return f"Booked {_format_duration(minutes)} with {provider_name} on {when}. Booking ID: {group_id}"


def _failure(reason: str, message: str, attempts: int = 0) -> BookingResult:
    booking_metrics.track_outcome(reason)
    return BookingResult(success=False, message=message, reason=reason, attempts=attempts)


def _retry_delay(attempt: int, base_delay: float) -> float:
    return min(base_delay * (2 ** (attempt - 1)), settings.BOOKING_RETRY_MAX_DELAY)


# ---------- Core orchestration ----------

async def get_availability(
    db: AsyncSession,
    provider_id: str,
    day: date,
    duration_hours: Hours,
    *,
    today: Optional[date] = None,
) -> list[Slot]:
    """
    Slots for a provider/date/duration from a lock-free snapshot.
    Inactive providers, past dates and non-working days give an empty list.
    Raises ProviderNotFound for an unknown provider.
    """
    duration_minutes(duration_hours)  # rejects non-positive durations up front
    calendar = await get_calendar(db, provider_id)
    booking_metrics.track_availability_query()
    if not is_date_bookable(calendar, day, today=today):
        return []

    committed = await list_committed_intervals(db, provider_id, day)
    return compute_availability(calendar, day, duration_hours, committed)


async def book(
    db: AsyncSession,
    *,
    provider_id: str,
    user_id: str,
    day: date,
    start_time: Union[str, time],
    duration_hours: Hours,
    today: Optional[date] = None,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> BookingResult:
    """
    One booking attempt, Validating -> Reserving -> Committed | Rejected:
    1) validate against the provider calendar
    2) price = hourly rate x duration
    3) reserve in the ledger, retrying store failures with backoff
    4) translate the outcome into a single result
    Conflicts are final and never retried.
    """
    max_attempts = max_attempts or settings.BOOKING_MAX_ATTEMPTS
    base_delay = settings.BOOKING_RETRY_BASE_DELAY if base_delay is None else base_delay
    set_booking_context(provider_id=provider_id, user_id=user_id)

    # 1) Validate
    try:
        start = parse_time(start_time)
        provider = await require_provider(db, provider_id)
        calendar = provider.to_calendar()
        validate_booking(calendar, day, start, duration_hours, today=today)
    except InvalidBookingRequest as e:
        logger.info("booking_invalid", detail=e.message)
        return _failure(e.reason, e.message)
    except ProviderNotFound as e:
        logger.info("booking_unknown_provider")
        return _failure(e.reason, e.message)
    except InvalidCalendar as e:
        log_error(e, {"operation": "book", "provider_id": provider_id})
        return _failure(InvalidBookingRequest.reason, "This provider's calendar is not configured for bookings.")
    except (DBAPIError, OSError) as e:
        log_error(e, {"operation": "load_provider", "provider_id": provider_id})
        return _failure(ReservationStatus.STORE_FAILURE.value, STORE_FAILURE_MESSAGE)

    # 2) Price; cache plain values so nothing lazy-loads after a rollback
    hours = Decimal(str(duration_hours))
    total_price = (provider.hourly_rate * hours).quantize(Decimal("0.01"))
    currency = provider.currency
    provider_name = provider.name

    # 3) Reserve
    outcome: Reservation
    attempt = 0
    while True:
        attempt += 1
        with booking_metrics.time_reserve(provider_id):
            outcome = await reserve(
                db,
                calendar=calendar,
                day=day,
                start=start,
                duration_hours=duration_hours,
                user_id=user_id,
                total_price=total_price,
                currency=currency,
                today=today,
            )
        if outcome.status is not ReservationStatus.STORE_FAILURE or attempt >= max_attempts:
            break
        delay = _retry_delay(attempt, base_delay)
        booking_metrics.track_retry()
        logger.warning("reserve_retry", attempt=attempt, delay=round(delay, 3), detail=outcome.detail)
        await asyncio.sleep(delay)

    # 4) Translate
    if outcome.status is ReservationStatus.COMMITTED:
        booking_metrics.track_outcome(outcome.status.value)
        logger.info("booking_committed", booking_group_id=outcome.booking_group_id, attempts=attempt)
        return BookingResult(
            success=True,
            message=_compose_success_message(
                provider_name, day, start, duration_minutes(duration_hours), outcome.booking_group_id
            ),
            booking_group_id=outcome.booking_group_id,
            reason=outcome.status.value,
            total_price=total_price,
            currency=currency,
            attempts=attempt,
        )

    if outcome.status is ReservationStatus.CONFLICT:
        logger.info("booking_conflict", date=day.isoformat(), start=start.strftime("%H:%M"))
        return _failure(outcome.status.value, CONFLICT_MESSAGE, attempt)

    if outcome.status is ReservationStatus.INVALID_REQUEST:
        return _failure(outcome.status.value, outcome.detail, attempt)

    logger.error("booking_store_failure", attempts=attempt, detail=outcome.detail)
    return _failure(outcome.status.value, STORE_FAILURE_MESSAGE, attempt)
