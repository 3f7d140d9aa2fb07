# slotbook/schemas/provider.py

from datetime import time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from slotbook.core.config import settings


class ProviderCreate(BaseModel):
    id: Optional[str] = Field(None, max_length=36)
    name: str = Field(..., min_length=1, max_length=120, examples=["Dr. Jane Doe"])
    service_type: Optional[str] = Field(None, examples=["physiotherapy"])
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    available_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5], description="1=Mon .. 7=Sun")
    shift_start: time = time(9, 0)
    shift_end: time = time(17, 0)
    slot_minutes: int = Field(default_factory=lambda: settings.DEFAULT_SLOT_MINUTES, gt=0, le=24 * 60)
    is_active: bool = True

    @field_validator("available_days")
    @classmethod
    def _days_in_range(cls, v: List[int]) -> List[int]:
        bad = [d for d in v if d < 1 or d > 7]
        if bad:
            raise ValueError(f"available_days must be 1..7, got {bad}")
        return sorted(set(v))

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _shift_order(self):
        if self.shift_start >= self.shift_end:
            raise ValueError("shift_start must be before shift_end")
        return self


class ProviderOut(BaseModel):
    id: str
    name: str
    service_type: Optional[str] = None
    hourly_rate: Decimal
    currency: str
    available_days: List[int]
    shift_start: time
    shift_end: time
    slot_minutes: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)
