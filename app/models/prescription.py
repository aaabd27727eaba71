"""Prescription models - Cannabis prescriptions and product catalog."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, TenantModel, UTCDateTime, enum_column
from app.models.doctor import DoctorProfile
from app.models.patient import Patient


class PrescriptionStatus(str, Enum):
    """Prescription lifecycle."""

    DRAFT = "DRAFT"
    SIGNED = "SIGNED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class CannabisProduct(BaseModel):
    """Catalog entry of a cannabis-based product."""

    __tablename__ = "cannabis_products"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    manufacturer: Mapped[str] = mapped_column(String(255), nullable=False)

    active_compound: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="CBD, THC, CBD:THC ...",
    )

    concentration: Mapped[str] = mapped_column(String(100), nullable=False)
    thc_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    cbd_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    presentation: Mapped[str] = mapped_column(String(100), nullable=False)
    volume: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    administration_route: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    anvisa_registration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class Prescription(TenantModel):
    """Prescription issued from a medical record."""

    __tablename__ = "prescriptions"

    medical_record_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("medical_records.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
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

    product_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("cannabis_products.id", ondelete="SET NULL"),
        nullable=True,
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    concentration: Mapped[str] = mapped_column(String(100), nullable=False)
    dosage: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[str] = mapped_column(String(100), nullable=False)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PrescriptionStatus] = mapped_column(
        enum_column(PrescriptionStatus, "prescription_status"),
        nullable=False,
        default=PrescriptionStatus.DRAFT,
        index=True,
    )

    signature_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    signed_by_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    revoke_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    patient: Mapped[Patient] = relationship(lazy="joined")
    doctor: Mapped[DoctorProfile] = relationship(lazy="joined")
    product: Mapped[Optional[CannabisProduct]] = relationship(lazy="joined")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Prescription id={self.id} status={self.status.value}>"
