"""Audit log model - Append-only trail of mutations and signatures."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, UTCDateTime, enum_column, utcnow
from app.models.user import User


class AuditAction(str, Enum):
    """Audited action."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SIGN = "SIGN"


class AuditLog(Base):
    """
    Audit log entry.

    Written by the audit middleware for every successful mutating request
    and by the signing services. Rows are never updated.
    """

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )

    organization_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Organization context (NULL for platform-level actions)",
    )

    user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="User who performed the action (NULL for anonymous calls)",
    )

    action: Mapped[AuditAction] = mapped_column(
        enum_column(AuditAction, "audit_action"),
        nullable=False,
        index=True,
    )

    entity: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Entity name (e.g., 'Patient', 'MedicalRecord')",
    )

    entity_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Entity ID or 'unknown'",
    )

    old_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    new_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Request payload with secrets redacted",
    )

    # "metadata" is reserved on declarative classes
    audit_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        comment="Request duration, url and method",
    )

    ip_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="IP address of the request",
    )

    user_agent: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="User agent string",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="When the action occurred",
    )

    user: Mapped[Optional[User]] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_audit_logs_organization_created_at", "organization_id", "created_at"),
        Index("ix_audit_logs_entity", "entity", "entity_id"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<AuditLog {self.action.value} {self.entity}:{self.entity_id} by user={self.user_id}>"
