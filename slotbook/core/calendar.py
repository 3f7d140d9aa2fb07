# slotbook/core/calendar.py
"""
Provider calendar arithmetic: shift bounds, working days and slot alignment.

Everything here is pure. Times of day are handled as minutes since midnight
so fractional-hour durations (0.5h, 1.5h) line up with the slot grid exactly.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from slotbook.core.config import settings
from slotbook.core.errors import InvalidBookingRequest, InvalidCalendar

Hours = Union[int, float, Decimal, str]

# 1=Mon .. 7=Sun (ISO weekday numbering)
WEEKDAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}


class Interval(NamedTuple):
    """Half-open [start, end) in minutes since midnight."""

    start: int
    end: int

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class ProviderCalendar:
    provider_id: str
    working_days: frozenset[int]
    shift_start: time
    shift_end: time
    slot_minutes: int = 60
    is_active: bool = True

    def __post_init__(self):
        if self.shift_start >= self.shift_end:
            raise InvalidCalendar(
                f"shift_start {self.shift_start} must be before shift_end {self.shift_end}"
            )
        if self.slot_minutes <= 0:
            raise InvalidCalendar("slot_minutes must be positive")
        if any(d not in WEEKDAY_NAMES for d in self.working_days):
            raise InvalidCalendar(f"working_days must be within 1..7, got {sorted(self.working_days)}")
        if self.is_active and not self.working_days:
            raise InvalidCalendar("an active provider needs at least one working day")

    @property
    def shift(self) -> Interval:
        return Interval(to_minutes(self.shift_start), to_minutes(self.shift_end))

    def works_on(self, day: date) -> bool:
        return day.isoweekday() in self.working_days


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def parse_time(value: Union[str, time]) -> time:
    """Accept "14:00", "14:00:00" or a time; seconds must be zero."""
    if isinstance(value, time):
        t = value
    else:
        try:
            t = time.fromisoformat(value.strip())
        except ValueError:
            raise InvalidBookingRequest(f"Invalid start time {value!r}. Use HH:MM (e.g. 14:00).")
    if t.second or t.microsecond:
        raise InvalidBookingRequest("Start time must be on a whole minute.")
    return t.replace(tzinfo=None)


def duration_minutes(duration_hours: Hours) -> int:
    """Convert a positive duration in hours to whole minutes."""
    try:
        hours = Decimal(str(duration_hours))
    except InvalidOperation:
        raise InvalidBookingRequest(f"Invalid duration {duration_hours!r}.")
    if not hours.is_finite() or hours <= 0:
        raise InvalidBookingRequest("Duration must be a positive number of hours.")
    minutes = hours * 60
    if minutes != minutes.to_integral_value():
        raise InvalidBookingRequest("Duration must be a whole number of minutes.")
    return int(minutes)


def local_today(tz_name: Optional[str] = None) -> date:
    """Today's date in provider-local time."""
    return datetime.now(ZoneInfo(tz_name or settings.LOCAL_TIMEZONE)).date()


def enumerate_slot_starts(calendar: ProviderCalendar, day: date, duration_hours: Hours) -> list[time]:
    """
    Every start t on the slot grid (anchored at shift_start) with
    shift_start <= t and t + duration <= shift_end, ascending.
    Empty for an inactive provider, a non-working day, a duration that
    is not a whole number of slots, or a duration longer than the shift.
    """
    minutes = duration_minutes(duration_hours)
    if not calendar.is_active or not calendar.works_on(day):
        return []
    if minutes % calendar.slot_minutes:
        return []

    shift = calendar.shift
    starts = []
    current = shift.start
    while current + minutes <= shift.end:
        starts.append(from_minutes(current))
        current += calendar.slot_minutes
    return starts


def is_date_bookable(calendar: ProviderCalendar, day: date, today: Optional[date] = None) -> bool:
    if not calendar.is_active:
        return False
    if day < (today or local_today()):
        return False
    return calendar.works_on(day)


def validate_booking(
    calendar: ProviderCalendar,
    day: date,
    start: time,
    duration_hours: Hours,
    today: Optional[date] = None,
) -> Interval:
    """
    Check a booking request against the calendar and return its interval.
    Raises InvalidBookingRequest with a caller-facing message otherwise.
    """
    if not calendar.is_active:
        raise InvalidBookingRequest("This provider is not accepting bookings.")
    if day < (today or local_today()):
        raise InvalidBookingRequest("Bookings cannot be made for past dates.")
    if not calendar.works_on(day):
        raise InvalidBookingRequest(
            f"The provider does not work on {WEEKDAY_NAMES[day.isoweekday()]}s."
        )

    minutes = duration_minutes(duration_hours)
    if minutes % calendar.slot_minutes:
        raise InvalidBookingRequest(
            f"Duration must be a multiple of {calendar.slot_minutes} minutes."
        )

    shift = calendar.shift
    begin = to_minutes(start)
    if begin < shift.start or begin + minutes > shift.end:
        raise InvalidBookingRequest(
            f"Requested time falls outside working hours "
            f"({calendar.shift_start:%H:%M}-{calendar.shift_end:%H:%M})."
        )
    if (begin - shift.start) % calendar.slot_minutes:
        raise InvalidBookingRequest(
            f"Start time must align to {calendar.slot_minutes}-minute slots "
            f"starting at {calendar.shift_start:%H:%M}."
        )
    return Interval(begin, begin + minutes)


def split_into_slots(interval: Interval, slot_minutes: int) -> list[time]:
    """Slot start times that make up an aligned interval."""
    return [from_minutes(m) for m in range(interval.start, interval.end, slot_minutes)]


def overlaps_any(interval: Interval, others: Iterable[Interval]) -> bool:
    return any(interval.overlaps(other) for other in others)
