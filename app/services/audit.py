"""Explicit audit entries written by services (signatures, revocations)."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AuditAction, AuditLog


def record_audit(
    db: AsyncSession,
    action: AuditAction,
    entity: str,
    entity_id: UUID,
    user_id: Optional[UUID] = None,
    organization_id: Optional[UUID] = None,
    metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """Add an audit row to the session; committed with the caller's change."""
    entry = AuditLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id),
        audit_metadata=metadata,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry
