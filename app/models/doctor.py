"""Doctor profile model - Medical license data for prescribers."""

from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel
from app.models.user import User


class DoctorProfile(BaseModel):
    """
    Doctor profile model.

    Extends a user with CRM registration. CRM number is unique per state.
    """

    __tablename__ = "doctor_profiles"

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="User that owns this profile",
    )

    crm: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="CRM registration number",
    )

    uf_crm: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        comment="State (UF) of the CRM registration",
    )

    specialty: Mapped[Optional[str]] = mapped_column(
        String(120),
        nullable=True,
        comment="Medical specialty",
    )

    bio: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Public biography",
    )

    signature_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Scanned signature image URL",
    )

    crm_verified: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        comment="Whether the CRM was checked against the council registry",
    )

    user: Mapped[User] = relationship(lazy="joined")

    __table_args__ = (UniqueConstraint("crm", "uf_crm", name="uq_doctor_profiles_crm_uf"),)

    def __repr__(self) -> str:
        """String representation."""
        return f"<DoctorProfile CRM {self.crm}/{self.uf_crm}>"
