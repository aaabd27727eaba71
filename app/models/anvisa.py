"""ANVISA report model - Import authorization reports (laudos)."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import JSONType, TenantModel, UTCDateTime, enum_column
from app.models.doctor import DoctorProfile
from app.models.patient import Patient


class AnvisaReportStatus(str, Enum):
    """ANVISA report lifecycle."""

    DRAFT = "DRAFT"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AnvisaReport(TenantModel):
    """
    ANVISA report.

    form_data holds the patient, doctor, diagnosis, prescription, monitoring
    and declarations sections of the authorization form.
    """

    __tablename__ = "anvisa_reports"

    medical_record_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("medical_records.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    prescription_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("prescriptions.id", ondelete="SET NULL"),
        nullable=True,
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

    form_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Authorization form sections (PHI)",
    )

    status: Mapped[AnvisaReportStatus] = mapped_column(
        enum_column(AnvisaReportStatus, "anvisa_report_status"),
        nullable=False,
        default=AnvisaReportStatus.DRAFT,
        index=True,
    )

    signature_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    pdf_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    package_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    submitted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    protocol_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    anvisa_response: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Decision details returned by ANVISA",
    )

    patient: Mapped[Patient] = relationship(lazy="joined")
    doctor: Mapped[DoctorProfile] = relationship(lazy="joined")

    def __repr__(self) -> str:
        """String representation."""
        return f"<AnvisaReport id={self.id} status={self.status.value}>"
