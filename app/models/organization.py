"""Organization model - Tenants using the platform."""

from enum import Enum
from typing import Any, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType, enum_column


class OrganizationType(str, Enum):
    """Kind of organization."""

    CLINICA = "CLINICA"
    ASSOCIACAO = "ASSOCIACAO"
    CONSULTORIO = "CONSULTORIO"


class Organization(BaseModel):
    """
    Organization (tenant) model.

    Each organization is an isolated clinic or patient association.
    Tenant-owned tables reference organization_id.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Organization name",
    )

    slug: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
        index=True,
        comment="URL-safe identifier (e.g., 'consultorio-dr-ana-x1y2z3')",
    )

    type: Mapped[OrganizationType] = mapped_column(
        enum_column(OrganizationType, "organization_type"),
        nullable=False,
        default=OrganizationType.CLINICA,
        comment="Clinic, association or private practice",
    )

    logo: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Logo URL",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Contact phone",
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Contact email",
    )

    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Free-form organization preferences",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Whether organization is active",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Organization {self.slug}>"
