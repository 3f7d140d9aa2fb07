# slotbook/db/models/appointment.py

from __future__ import annotations
from datetime import date, datetime, time, timezone
from decimal import Decimal
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.core.calendar import Interval, to_minutes
from slotbook.db.session import Base

APPOINTMENT_STATUSES = ("pending", "confirmed", "cancelled", "completed")
# Only these statuses occupy time; the rest is history
ACTIVE_STATUSES = ("pending", "confirmed")

_ACTIVE_SQL = sa.text("status IN ('pending', 'confirmed')")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_appointments_status",
        ),
        sa.Index("ix_appointments_provider_date_start", "provider_id", "appointment_date", "start_time"),
        sa.Index("ix_appointments_user_id", "user_id"),
        sa.Index("ix_appointments_booking_group_id", "booking_group_id"),
        # Backstop for the ledger lock: one active row per provider slot
        sa.Index(
            "uq_appointments_active_slot",
            "provider_id", "appointment_date", "start_time",
            unique=True,
            postgresql_where=_ACTIVE_SQL,
            sqlite_where=_ACTIVE_SQL,
        ),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("providers.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    # Provider-local calendar date and time of day
    appointment_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="confirmed")
    booking_group_id: Mapped[str] = mapped_column(sa.String(36), nullable=False)

    # Fixed at booking time
    total_price: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def duration_hours(self) -> Decimal:
        return (Decimal(self.duration_minutes) / 60).quantize(Decimal("0.01"))

    @property
    def interval(self) -> Interval:
        begin = to_minutes(self.start_time)
        return Interval(begin, begin + self.duration_minutes)

    def mark_as_cancelled(self):
        self.status = "cancelled"
        self.cancelled_at = datetime.now(timezone.utc)


class BookingLock(Base):
    """
    One row per (provider, date). Reserve and cancel bump `version` first,
    which holds the row lock for the rest of the transaction.
    """

    __tablename__ = "booking_locks"

    provider_id: Mapped[str] = mapped_column(sa.String(36), primary_key=True)
    lock_date: Mapped[date] = mapped_column(sa.Date, primary_key=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
