"""Medical record model - Structured clinical notes with digital signature."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import JSONType, TenantModel, UTCDateTime, enum_column
from app.models.doctor import DoctorProfile
from app.models.patient import Patient


class TemplateType(str, Enum):
    """Medical record template."""

    PRIMEIRA_CONSULTA = "PRIMEIRA_CONSULTA"
    RETORNO = "RETORNO"
    AJUSTE_DOSE = "AJUSTE_DOSE"


class RecordStatus(str, Enum):
    """Medical record status. Signed records are immutable."""

    DRAFT = "DRAFT"
    SIGNED = "SIGNED"


class MedicalRecord(TenantModel):
    """
    Medical record of a consultation.

    One record per consultation. Once signed, clinical_data is frozen and
    signature_hash covers it.
    """

    __tablename__ = "medical_records"

    consultation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("consultations.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

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
    )

    template_type: Mapped[TemplateType] = mapped_column(
        enum_column(TemplateType, "template_type"),
        nullable=False,
    )

    clinical_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Clinical data keyed by field (PHI)",
    )

    status: Mapped[RecordStatus] = mapped_column(
        enum_column(RecordStatus, "record_status"),
        nullable=False,
        default=RecordStatus.DRAFT,
    )

    signature_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="sha256 over canonical payload, timestamp and pepper",
    )

    signed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    signed_by_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    patient: Mapped[Patient] = relationship(lazy="joined")
    doctor: Mapped[DoctorProfile] = relationship(lazy="joined")

    def __repr__(self) -> str:
        """String representation."""
        return f"<MedicalRecord id={self.id} status={self.status.value}>"
