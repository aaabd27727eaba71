"""Doctor weekly availability and bookable slot generation."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Sequence
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Availability, BlockedSlot, Consultation, DoctorProfile
from app.models.base import utcnow
from app.models.consultation import ACTIVE_CONSULTATION_STATUSES
from app.schemas.availability import (
    AvailabilityCreate,
    AvailabilityResponse,
    AvailabilityUpdate,
    BlockedSlotCreate,
    BlockedSlotResponse,
    TimeSlot,
)
from app.utils.timezones import day_bounds, format_hhmm, local_datetime, parse_hhmm

logger = logging.getLogger(__name__)

MAX_SLOT_RANGE_DAYS = 30


def _minutes(value: str) -> int:
    clock = parse_hhmm(value)
    return clock.hour * 60 + clock.minute


def _weekday_sunday_zero(day: date) -> int:
    """date.weekday() is Monday = 0; schedules use Sunday = 0."""
    return (day.weekday() + 1) % 7


def _overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def generate_slots(
    availabilities: Sequence[Availability],
    start_date: date,
    end_date: date,
    booked: Sequence[tuple[datetime, datetime]],
    blocked: Sequence[tuple[datetime, datetime]],
    now: Optional[datetime] = None,
) -> list[TimeSlot]:
    """
    Expand weekly windows into concrete slots between two dates (inclusive).

    Slots inside a break or a blocked period are left out. A slot is
    unavailable when its start falls inside a booked consultation or lies
    in the past.
    """
    now = now or utcnow()
    slots: list[TimeSlot] = []

    day = start_date
    while day <= end_date:
        weekday = _weekday_sunday_zero(day)

        for availability in availabilities:
            if availability.day_of_week != weekday:
                continue
            if availability.valid_from and day < availability.valid_from:
                continue
            if availability.valid_until and day > availability.valid_until:
                continue

            break_range = None
            if availability.break_start and availability.break_end:
                break_range = (_minutes(availability.break_start), _minutes(availability.break_end))

            slot_start = _minutes(availability.start_time)
            window_end = _minutes(availability.end_time)

            while slot_start + availability.slot_duration <= window_end:
                slot_end = slot_start + availability.slot_duration
                current = slot_start
                slot_start = slot_end

                if break_range and current < break_range[1] and slot_end > break_range[0]:
                    continue

                starts_at = local_datetime(day, time(current // 60, current % 60))
                ends_at = starts_at + timedelta(minutes=availability.slot_duration)

                if any(_overlaps(starts_at, ends_at, b_start, b_end) for b_start, b_end in blocked):
                    continue

                is_booked = any(c_start <= starts_at < c_end for c_start, c_end in booked)

                slots.append(
                    TimeSlot(
                        date=day,
                        start_time=format_hhmm(time(current // 60, current % 60)),
                        end_time=format_hhmm(time(slot_end // 60, slot_end % 60)),
                        available=not is_booked and starts_at >= now,
                    )
                )

        day += timedelta(days=1)

    slots.sort(key=lambda slot: (slot.date, slot.start_time))
    return slots


class AvailabilityService:
    """Weekly schedule configuration of doctors."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _find_overlap(
        self,
        doctor_id: UUID,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[UUID]:
        # HH:mm strings compare in clock order
        stmt = select(Availability.id).where(
            Availability.doctor_id == doctor_id,
            Availability.day_of_week == day_of_week,
            Availability.is_active.is_(True),
            Availability.start_time < end_time,
            Availability.end_time > start_time,
        )
        if exclude_id is not None:
            stmt = stmt.where(Availability.id != exclude_id)
        return await self.db.scalar(stmt.limit(1))

    async def create(self, doctor: DoctorProfile, data: AvailabilityCreate) -> AvailabilityResponse:
        """
        Raises:
            HTTPException: 400 on an inverted time range or overlap
        """
        if data.start_time >= data.end_time:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="startTime must be before endTime",
            )

        if await self._find_overlap(doctor.id, data.day_of_week, data.start_time, data.end_time):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Availability overlaps with existing slot",
            )

        availability = Availability(doctor_id=doctor.id, **data.model_dump())
        self.db.add(availability)
        await self.db.commit()
        return AvailabilityResponse.model_validate(availability)

    async def list_for_doctor(self, doctor_id: UUID) -> list[AvailabilityResponse]:
        availabilities = await self.db.scalars(
            select(Availability)
            .where(Availability.doctor_id == doctor_id, Availability.is_active.is_(True))
            .order_by(Availability.day_of_week.asc(), Availability.start_time.asc())
        )
        return [AvailabilityResponse.model_validate(a) for a in availabilities]

    async def _get_owned(self, availability_id: UUID, doctor_id: UUID) -> Availability:
        availability = await self.db.get(Availability, availability_id)
        if availability is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability not found")
        if availability.doctor_id != doctor_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return availability

    async def update(
        self, availability_id: UUID, doctor: DoctorProfile, data: AvailabilityUpdate
    ) -> AvailabilityResponse:
        availability = await self._get_owned(availability_id, doctor.id)
        changes = data.model_dump(exclude_unset=True)

        start_time = changes.get("start_time", availability.start_time)
        end_time = changes.get("end_time", availability.end_time)
        if start_time >= end_time:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="startTime must be before endTime",
            )
        if ("start_time" in changes or "end_time" in changes) and await self._find_overlap(
            doctor.id, availability.day_of_week, start_time, end_time, availability.id
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Availability overlaps with existing slot",
            )

        for field, value in changes.items():
            setattr(availability, field, value)
        await self.db.commit()
        return AvailabilityResponse.model_validate(availability)

    async def deactivate(self, availability_id: UUID, doctor: DoctorProfile) -> AvailabilityResponse:
        availability = await self._get_owned(availability_id, doctor.id)
        availability.is_active = False
        await self.db.commit()
        return AvailabilityResponse.model_validate(availability)

    async def available_slots(self, doctor_id: UUID, start_date: date, end_date: date) -> list[TimeSlot]:
        """
        Bookable slots of a doctor between two local dates.

        Raises:
            HTTPException: 400 on an inverted range or one longer than 30 days
        """
        if end_date < start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="startDate must be before endDate",
            )
        if (end_date - start_date).days > MAX_SLOT_RANGE_DAYS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Date range cannot exceed {MAX_SLOT_RANGE_DAYS} days",
            )

        range_start, _ = day_bounds(start_date)
        _, range_end = day_bounds(end_date)

        availabilities = (
            await self.db.scalars(
                select(Availability).where(
                    Availability.doctor_id == doctor_id,
                    Availability.is_active.is_(True),
                    or_(Availability.valid_from.is_(None), Availability.valid_from <= end_date),
                    or_(Availability.valid_until.is_(None), Availability.valid_until >= start_date),
                )
            )
        ).all()

        consultations = await self.db.execute(
            select(Consultation.scheduled_at, Consultation.duration).where(
                Consultation.doctor_id == doctor_id,
                Consultation.status.in_(ACTIVE_CONSULTATION_STATUSES),
                Consultation.scheduled_at >= range_start - timedelta(days=1),
                Consultation.scheduled_at < range_end,
            )
        )
        booked = [(start, start + timedelta(minutes=duration)) for start, duration in consultations]

        blocked_rows = await self.db.execute(
            select(BlockedSlot.start_at, BlockedSlot.end_at).where(
                BlockedSlot.doctor_id == doctor_id,
                and_(BlockedSlot.start_at < range_end, BlockedSlot.end_at > range_start),
            )
        )
        blocked = [(start, end) for start, end in blocked_rows]

        return generate_slots(availabilities, start_date, end_date, booked, blocked)

    # ------------------------------------------------------------------
    # Blocked periods
    # ------------------------------------------------------------------

    async def create_blocked_slot(self, doctor: DoctorProfile, data: BlockedSlotCreate) -> BlockedSlotResponse:
        if data.start_at >= data.end_at:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="startAt must be before endAt",
            )

        blocked = BlockedSlot(doctor_id=doctor.id, **data.model_dump())
        self.db.add(blocked)
        await self.db.commit()
        return BlockedSlotResponse.model_validate(blocked)

    async def list_blocked_slots(self, doctor_id: UUID) -> list[BlockedSlotResponse]:
        blocked = await self.db.scalars(
            select(BlockedSlot)
            .where(BlockedSlot.doctor_id == doctor_id, BlockedSlot.end_at >= utcnow())
            .order_by(BlockedSlot.start_at.asc())
        )
        return [BlockedSlotResponse.model_validate(b) for b in blocked]

    async def delete_blocked_slot(self, blocked_id: UUID, doctor: DoctorProfile) -> None:
        blocked = await self.db.get(BlockedSlot, blocked_id)
        if blocked is None or blocked.doctor_id != doctor.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blocked slot not found")

        await self.db.delete(blocked)
        await self.db.commit()
