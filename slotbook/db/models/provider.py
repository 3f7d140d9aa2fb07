# slotbook/db/models/provider.py

from __future__ import annotations
from datetime import datetime, time, timezone
from decimal import Decimal
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.core.calendar import ProviderCalendar
from slotbook.db.session import Base


class Provider(Base):
    """Provider profile. Owned by provider management; read-only here."""

    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    service_type: Mapped[str | None] = mapped_column(sa.String(64))

    hourly_rate: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False, server_default="0")
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False, server_default="USD")

    # ISO weekdays, 1=Mon .. 7=Sun
    available_days: Mapped[list[int]] = mapped_column(sa.JSON, nullable=False, default=list)
    shift_start: Mapped[time] = mapped_column(sa.Time, nullable=False)
    shift_end: Mapped[time] = mapped_column(sa.Time, nullable=False)
    slot_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="60")
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    def to_calendar(self) -> ProviderCalendar:
        return ProviderCalendar(
            provider_id=self.id,
            working_days=frozenset(int(d) for d in (self.available_days or [])),
            shift_start=self.shift_start,
            shift_end=self.shift_end,
            slot_minutes=self.slot_minutes,
            is_active=self.is_active,
        )
