"""Membership model - Role binding between users and organizations."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, UTCDateTime, enum_column
from app.models.organization import Organization
from app.models.user import User


class MembershipRole(str, Enum):
    """Roles for RBAC inside an organization."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    SECRETARY = "SECRETARY"
    VIEWER = "VIEWER"
    SUPER_ADMIN = "SUPER_ADMIN"  # Platform operator
    PATIENT = "PATIENT"  # Patient portal access


class Membership(BaseModel):
    """
    Membership model.

    One row per (user, organization). Deactivated instead of deleted.
    """

    __tablename__ = "memberships"

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Member user",
    )

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Organization the user belongs to",
    )

    role: Mapped[MembershipRole] = mapped_column(
        enum_column(MembershipRole, "membership_role"),
        nullable=False,
        default=MembershipRole.VIEWER,
        comment="Role inside the organization",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Inactive memberships grant no access",
    )

    invited_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="When the invite was sent",
    )

    joined_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="When the user joined",
    )

    user: Mapped[User] = relationship(lazy="joined")
    organization: Mapped[Organization] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_memberships_user_organization"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Membership user={self.user_id} org={self.organization_id} role={self.role.value}>"
