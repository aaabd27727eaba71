"""Consultation model - Scheduled telemedicine appointments."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import TenantModel, UTCDateTime, enum_column
from app.models.doctor import DoctorProfile
from app.models.patient import Patient


class ConsultationType(str, Enum):
    """Consultation kind; drives the medical-record template."""

    PRIMEIRA_CONSULTA = "PRIMEIRA_CONSULTA"
    RETORNO = "RETORNO"
    AJUSTE_DOSE = "AJUSTE_DOSE"
    EMERGENCIA = "EMERGENCIA"


class ConsultationStatus(str, Enum):
    """
    Consultation lifecycle.

    SCHEDULED -> CONFIRMED -> WAITING -> IN_PROGRESS -> COMPLETED,
    with CANCELED and NO_SHOW as early exits.
    """

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    NO_SHOW = "NO_SHOW"


# Statuses that hold the doctor's time slot
ACTIVE_CONSULTATION_STATUSES = (
    ConsultationStatus.SCHEDULED,
    ConsultationStatus.CONFIRMED,
    ConsultationStatus.IN_PROGRESS,
)


class Consultation(TenantModel):
    """Consultation between a doctor and a patient."""

    __tablename__ = "consultations"

    patient_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    doctor_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("doctor_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Doctor profile (not user) ID",
    )

    type: Mapped[ConsultationType] = mapped_column(
        enum_column(ConsultationType, "consultation_type"),
        nullable=False,
        default=ConsultationType.PRIMEIRA_CONSULTA,
    )

    status: Mapped[ConsultationStatus] = mapped_column(
        enum_column(ConsultationStatus, "consultation_status"),
        nullable=False,
        default=ConsultationStatus.SCHEDULED,
        index=True,
    )

    scheduled_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
        comment="Appointment start (UTC)",
    )

    duration: Mapped[int] = mapped_column(
        nullable=False,
        default=60,
        comment="Duration in minutes",
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    room_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Video room name",
    )

    daily_room_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Daily.co room URL",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    patient: Mapped[Patient] = relationship(lazy="joined")
    doctor: Mapped[DoctorProfile] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_consultations_doctor_scheduled_at", "doctor_id", "scheduled_at"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Consultation id={self.id} status={self.status.value}>"
