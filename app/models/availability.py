"""Availability models - Doctor weekly schedule and blocked periods."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, UTCDateTime


class Availability(BaseModel):
    """
    Weekly availability window of a doctor.

    Times are HH:mm strings in the clinic timezone. day_of_week follows
    Sunday = 0.
    """

    __tablename__ = "availabilities"

    doctor_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("doctor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week: Mapped[int] = mapped_column(
        nullable=False,
        comment="0 (Sunday) to 6 (Saturday)",
    )

    start_time: Mapped[str] = mapped_column(String(5), nullable=False, comment="HH:mm")
    end_time: Mapped[str] = mapped_column(String(5), nullable=False, comment="HH:mm")

    slot_duration: Mapped[int] = mapped_column(
        nullable=False,
        default=30,
        comment="Slot length in minutes",
    )

    break_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    break_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class BlockedSlot(BaseModel):
    """Period in which a doctor takes no appointments."""

    __tablename__ = "blocked_slots"

    doctor_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("doctor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
