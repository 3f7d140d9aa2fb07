# slotbook/services/availability.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable

from slotbook.core.calendar import (
    Hours,
    Interval,
    ProviderCalendar,
    duration_minutes,
    enumerate_slot_starts,
    overlaps_any,
    to_minutes,
)


@dataclass(frozen=True)
class Slot:
    slot_time: time
    is_available: bool


def compute_availability(
    calendar: ProviderCalendar,
    day: date,
    duration_hours: Hours,
    committed: Iterable[Interval],
) -> list[Slot]:
    """
    Mark each candidate start as available unless [start, start + duration)
    overlaps a committed interval. Advisory: computed from a snapshot and
    reserves nothing.
    """
    minutes = duration_minutes(duration_hours)
    busy = list(committed)
    slots = []
    for start in enumerate_slot_starts(calendar, day, duration_hours):
        begin = to_minutes(start)
        free = not overlaps_any(Interval(begin, begin + minutes), busy)
        slots.append(Slot(slot_time=start, is_available=free))
    return slots
