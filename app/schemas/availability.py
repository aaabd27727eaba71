"""Doctor availability schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.common import TIME_PATTERN, CamelModel, TenantRequestModel, UTCDatetime


class AvailabilityCreate(TenantRequestModel):
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday")
    start_time: str = Field(pattern=TIME_PATTERN, description="HH:mm")
    end_time: str = Field(pattern=TIME_PATTERN, description="HH:mm")
    slot_duration: int = Field(default=30, ge=15, le=120, description="Minutes")
    break_start: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    break_end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None


class AvailabilityUpdate(TenantRequestModel):
    non_nullable = ("start_time", "end_time", "slot_duration", "is_active")

    start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    slot_duration: Optional[int] = Field(default=None, ge=15, le=120)
    break_start: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    break_end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: Optional[bool] = None


class AvailabilityResponse(CamelModel):
    id: UUID
    doctor_id: UUID
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: bool


class TimeSlot(CamelModel):
    date: date
    start_time: str
    end_time: str
    available: bool


class BlockedSlotCreate(TenantRequestModel):
    start_at: UTCDatetime
    end_at: UTCDatetime
    reason: Optional[str] = None


class BlockedSlotResponse(CamelModel):
    id: UUID
    doctor_id: UUID
    start_at: datetime
    end_at: datetime
    reason: Optional[str] = None
