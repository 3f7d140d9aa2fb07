#!/usr/bin/env python3
"""
Tests for the booking service and the ledger behind it.
"""

from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import slotbook.crud.appointment as ledger
import slotbook.services.booking as booking_service
from slotbook.core.errors import BookingGroupNotFound
from slotbook.core.metrics import booking_metrics
from slotbook.crud.appointment import (
    Reservation,
    ReservationStatus,
    cancel_booking_group,
    get_booking_group,
    list_provider_appointments,
    list_user_appointments,
    purge_appointments,
)
from slotbook.services.booking import CONFLICT_MESSAGE, book

TODAY = date(2025, 10, 20)      # Monday
TUESDAY = date(2025, 10, 21)
WEDNESDAY = date(2025, 10, 22)


async def book_at(session_factory, provider_id, start, hours=1, user_id="u-1", day=TUESDAY, **kwargs):
    """Book in a fresh session, the way separate requests would."""
    async with session_factory() as s:
        return await book(s, provider_id=provider_id, user_id=user_id, day=day,
                          start_time=start, duration_hours=hours, today=TODAY, **kwargs)


@pytest.mark.integration
class TestBookingService:
    """Test booking service functionality"""

    @pytest.mark.asyncio
    async def test_successful_booking(self, session_factory, db, provider):
        result = await book_at(session_factory, provider.id, "14:00")

        assert result.success is True
        assert result.reason == "committed"
        assert result.booking_group_id
        assert result.total_price == Decimal("100.00")
        assert result.currency == "USD"
        assert result.attempts == 1
        assert "Dr. Jane Doe" in result.message
        assert "Tuesday, October 21 at 14:00" in result.message
        assert result.booking_group_id in result.message

        rows = await get_booking_group(db, result.booking_group_id)
        assert len(rows) == 1
        assert rows[0].status == "confirmed"
        assert rows[0].start_time == time(14, 0)
        assert rows[0].duration_minutes == 60

    @pytest.mark.asyncio
    async def test_double_booking_conflicts(self, session_factory, db, provider):
        first = await book_at(session_factory, provider.id, "14:00", user_id="alice")
        second = await book_at(session_factory, provider.id, "14:00", user_id="bob")
        third = await book_at(session_factory, provider.id, "15:00", user_id="bob")

        assert first.success
        assert not second.success
        assert second.reason == "conflict"
        assert second.message == CONFLICT_MESSAGE
        assert second.booking_group_id is None
        assert third.success

        rows = await list_provider_appointments(db, provider.id, TUESDAY, active_only=True)
        assert [(r.user_id, r.start_time) for r in rows] == [("alice", time(14, 0)), ("bob", time(15, 0))]

    @pytest.mark.asyncio
    async def test_partial_overlap_conflicts(self, session_factory, provider):
        assert (await book_at(session_factory, provider.id, "14:00", hours=2)).success
        result = await book_at(session_factory, provider.id, "15:00")
        assert result.reason == "conflict"

    @pytest.mark.asyncio
    async def test_misaligned_start_is_invalid(self, session_factory, db, provider):
        result = await book_at(session_factory, provider.id, "13:30")

        assert not result.success
        assert result.reason == "invalid_request"
        assert "align" in result.message
        assert await list_provider_appointments(db, provider.id, TUESDAY) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,hours,day,fragment", [
        ("16:00", 2, TUESDAY, "working hours"),
        ("14:00", Decimal("1.5"), TUESDAY, "multiple"),
        ("14:00", 1, date(2025, 10, 25), "Saturday"),
        ("14:00", 1, date(2025, 10, 17), "past"),
        ("2pm", 1, TUESDAY, "HH:MM"),
        ("14:00", 0, TUESDAY, "positive"),
    ])
    async def test_invalid_requests(self, session_factory, provider, start, hours, day, fragment):
        result = await book_at(session_factory, provider.id, start, hours=hours, day=day)
        assert result.reason == "invalid_request"
        assert fragment in result.message
        assert result.attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_provider(self, session_factory, provider):
        result = await book_at(session_factory, "no-such-provider", "14:00")
        assert not result.success
        assert result.reason == "provider_not_found"

    @pytest.mark.asyncio
    async def test_inactive_provider(self, session_factory, make_provider):
        away = await make_provider(name="Dr. Away", is_active=False)
        result = await book_at(session_factory, away.id, "14:00")
        assert result.reason == "invalid_request"

    @pytest.mark.asyncio
    async def test_multi_slot_booking_writes_one_row_per_slot(self, session_factory, db, provider):
        result = await book_at(session_factory, provider.id, "10:00", hours=3)
        assert result.total_price == Decimal("300.00")

        rows = await get_booking_group(db, result.booking_group_id)
        assert [r.start_time for r in rows] == [time(10, 0), time(11, 0), time(12, 0)]
        assert {r.booking_group_id for r in rows} == {result.booking_group_id}
        assert sum(r.total_price for r in rows) == Decimal("300.00")
        assert "3 hours" in result.message

    @pytest.mark.asyncio
    async def test_fractional_duration_on_half_hour_grid(self, session_factory, db, make_provider):
        provider = await make_provider(slot_minutes=30, hourly_rate=Decimal("90.00"))
        result = await book_at(session_factory, provider.id, "13:30", hours=Decimal("1.5"))

        assert result.success
        assert result.total_price == Decimal("135.00")
        assert "1 hour 30 minutes" in result.message
        rows = await get_booking_group(db, result.booking_group_id)
        assert [r.start_time for r in rows] == [time(13, 30), time(14, 0), time(14, 30)]
        assert all(r.duration_minutes == 30 for r in rows)

    @pytest.mark.asyncio
    async def test_same_time_different_providers(self, session_factory, provider, make_provider):
        other = await make_provider(name="Dr. John Roe")
        assert (await book_at(session_factory, provider.id, "14:00")).success
        assert (await book_at(session_factory, other.id, "14:00")).success

    @pytest.mark.asyncio
    async def test_same_time_different_days(self, session_factory, provider):
        assert (await book_at(session_factory, provider.id, "14:00", day=TUESDAY)).success
        assert (await book_at(session_factory, provider.id, "14:00", day=WEDNESDAY)).success

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self, session_factory, provider):
        await book_at(session_factory, provider.id, "14:00")
        await book_at(session_factory, provider.id, "14:00")
        await book_at(session_factory, provider.id, "13:30")

        metrics = booking_metrics.get_metrics()
        assert metrics["outcomes"] == {"committed": 1, "conflict": 1, "invalid_request": 1}
        assert metrics["reserve_attempts"] == 2


@pytest.mark.integration
class TestRetries:
    """Store failures are retried with backoff; nothing else is"""

    @pytest.mark.asyncio
    async def test_store_failure_is_retried_until_commit(self, session_factory, provider, monkeypatch):
        real_reserve = booking_service.reserve
        calls = []

        async def flaky_reserve(db, **kwargs):
            calls.append(kwargs)
            if len(calls) < 3:
                return Reservation(ReservationStatus.STORE_FAILURE, detail="database is locked")
            return await real_reserve(db, **kwargs)

        monkeypatch.setattr(booking_service, "reserve", flaky_reserve)
        result = await book_at(session_factory, provider.id, "14:00", base_delay=0)

        assert result.success
        assert result.attempts == 3
        assert booking_metrics.retries == 2

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, session_factory, db, provider, monkeypatch):
        async def broken_lock(db, provider_id, day):
            raise OperationalError("INSERT INTO booking_locks", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "lock_provider_day", broken_lock)
        result = await book_at(session_factory, provider.id, "14:00", max_attempts=4, base_delay=0)

        assert not result.success
        assert result.reason == "store_failure"
        assert result.attempts == 4
        assert await list_provider_appointments(db, provider.id, TUESDAY) == []

    @pytest.mark.asyncio
    async def test_conflict_is_not_retried(self, session_factory, provider, monkeypatch):
        assert (await book_at(session_factory, provider.id, "14:00")).success

        real_reserve = booking_service.reserve
        calls = []

        async def counting_reserve(db, **kwargs):
            calls.append(kwargs)
            return await real_reserve(db, **kwargs)

        monkeypatch.setattr(booking_service, "reserve", counting_reserve)
        result = await book_at(session_factory, provider.id, "14:00", base_delay=0)

        assert result.reason == "conflict"
        assert len(calls) == 1

    def test_backoff_grows_and_is_capped(self):
        delays = [booking_service._retry_delay(n, 0.1) for n in range(1, 8)]
        assert delays[:3] == [0.1, 0.2, 0.4]
        assert max(delays) == booking_service.settings.BOOKING_RETRY_MAX_DELAY


@pytest.mark.integration
class TestLedgerAdministration:
    """Cancel, listing and purge"""

    @pytest.mark.asyncio
    async def test_cancel_frees_the_slot(self, session_factory, db, provider):
        first = await book_at(session_factory, provider.id, "14:00", hours=2, user_id="alice")

        rows = await cancel_booking_group(db, first.booking_group_id, user_id="alice")
        assert {r.status for r in rows} == {"cancelled"}
        assert all(r.cancelled_at is not None for r in rows)

        again = await book_at(session_factory, provider.id, "15:00", user_id="bob")
        assert again.success

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, session_factory, db, provider):
        result = await book_at(session_factory, provider.id, "14:00")
        await cancel_booking_group(db, result.booking_group_id)
        rows = await cancel_booking_group(db, result.booking_group_id)
        assert [r.status for r in rows] == ["cancelled"]

    @pytest.mark.asyncio
    async def test_cancel_checks_owner(self, session_factory, db, provider):
        result = await book_at(session_factory, provider.id, "14:00", user_id="alice")
        with pytest.raises(BookingGroupNotFound):
            await cancel_booking_group(db, result.booking_group_id, user_id="mallory")

    @pytest.mark.asyncio
    async def test_cancel_unknown_group(self, db):
        with pytest.raises(BookingGroupNotFound):
            await cancel_booking_group(db, "missing")

    @pytest.mark.asyncio
    async def test_user_appointments_sorted_by_date_then_time(self, session_factory, db, provider):
        await book_at(session_factory, provider.id, "15:00", day=WEDNESDAY)
        await book_at(session_factory, provider.id, "11:00", day=WEDNESDAY)
        await book_at(session_factory, provider.id, "16:00", day=TUESDAY)
        await book_at(session_factory, provider.id, "09:00", day=TUESDAY, user_id="someone-else")

        rows = await list_user_appointments(db, "u-1")
        assert [(r.appointment_date, r.start_time) for r in rows] == [
            (TUESDAY, time(16, 0)),
            (WEDNESDAY, time(11, 0)),
            (WEDNESDAY, time(15, 0)),
        ]

    @pytest.mark.asyncio
    async def test_user_appointments_active_only(self, session_factory, db, provider):
        kept = await book_at(session_factory, provider.id, "10:00")
        dropped = await book_at(session_factory, provider.id, "11:00")
        await cancel_booking_group(db, dropped.booking_group_id)

        everything = await list_user_appointments(db, "u-1")
        active = await list_user_appointments(db, "u-1", include_inactive=False)
        assert len(everything) == 2
        assert [r.booking_group_id for r in active] == [kept.booking_group_id]

    @pytest.mark.asyncio
    async def test_purge(self, session_factory, db, provider):
        await book_at(session_factory, provider.id, "10:00", hours=2)
        await book_at(session_factory, provider.id, "14:00")

        assert await purge_appointments(db, provider.id, TUESDAY) == 3
        assert await list_provider_appointments(db, provider.id, TUESDAY) == []
        assert (await book_at(session_factory, provider.id, "10:00")).success
