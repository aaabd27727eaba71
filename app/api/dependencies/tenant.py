"""Tenant resolution - organization selection and membership check."""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select

from app.api.dependencies.auth import CurrentUser, DbSession
from app.models.membership import Membership, MembershipRole
from app.models.organization import Organization
from app.models.user import User

logger = logging.getLogger(__name__)

ORG_HEADER = "x-org-id"


@dataclass
class TenantContext:
    """Caller, selected organization and the membership binding them."""

    user: User
    organization: Organization
    membership: Membership

    @property
    def role(self) -> MembershipRole:
        return self.membership.role

    @property
    def organization_id(self) -> UUID:
        return self.organization.id

    @property
    def user_id(self) -> UUID:
        return self.user.id


async def _organization_id_from_request(request: Request) -> Optional[str]:
    """Header x-org-id, else organizationId of a JSON body."""
    header = request.headers.get(ORG_HEADER)
    if header:
        return header

    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body: Any = await request.json()
        except ValueError:
            return None
        if isinstance(body, dict) and body.get("organizationId"):
            return str(body["organizationId"])
    return None


async def get_tenant(
    request: Request,
    user: CurrentUser,
    db: DbSession,
) -> TenantContext:
    """
    Resolve the organization the request acts on.

    Raises:
        HTTPException: 401 without an organization id, 403 when the caller
            has no active membership in it
    """
    raw_org_id = await _organization_id_from_request(request)
    if not raw_org_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Organization ID é obrigatório (header x-org-id)",
        )

    try:
        organization_id = UUID(raw_org_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Você não tem acesso a esta organização",
        ) from e

    membership = await db.scalar(
        select(Membership).where(
            Membership.user_id == user.id,
            Membership.organization_id == organization_id,
        )
    )

    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Você não tem acesso a esta organização",
        )

    if not membership.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Sua participação nesta organização está inativa",
        )

    request.state.organization_id = organization_id
    request.state.user_role = membership.role

    return TenantContext(user=user, organization=membership.organization, membership=membership)


Tenant = Annotated[TenantContext, Depends(get_tenant)]
