"""Current organization and member management endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import DbSession, Tenant, TenantContext, require_roles
from app.api.dependencies.roles import MANAGERS
from app.schemas.organization import (
    CurrentOrganizationResponse,
    InviteMemberRequest,
    MemberResponse,
    UpdateMemberRequest,
    UpdateOrganizationRequest,
)
from app.services.organizations import OrganizationService

router = APIRouter()

Manager = Annotated[TenantContext, Depends(require_roles(*MANAGERS))]


@router.get(
    "/current",
    response_model=CurrentOrganizationResponse,
    summary="Current organization",
    description="Organization selected by x-org-id with its latest subscription and counters.",
)
async def get_current(tenant: Tenant, db: DbSession) -> CurrentOrganizationResponse:
    return await OrganizationService(db).get_current(tenant.organization_id)


@router.patch("/current", response_model=CurrentOrganizationResponse, summary="Update organization")
async def update_current(
    data: UpdateOrganizationRequest, tenant: Manager, db: DbSession
) -> CurrentOrganizationResponse:
    return await OrganizationService(db).update_current(tenant.organization_id, data)


@router.get("/current/members", response_model=list[MemberResponse], summary="List members")
async def list_members(tenant: Tenant, db: DbSession) -> list[MemberResponse]:
    return await OrganizationService(db).list_members(tenant.organization_id)


@router.post(
    "/current/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite member",
    description="Invite by email. Unknown emails get a pending account.",
)
async def invite_member(data: InviteMemberRequest, tenant: Manager, db: DbSession) -> MemberResponse:
    return await OrganizationService(db).invite_member(tenant, data)


@router.patch("/current/members/{member_id}", response_model=MemberResponse, summary="Update member")
async def update_member(
    member_id: UUID, data: UpdateMemberRequest, tenant: Manager, db: DbSession
) -> MemberResponse:
    return await OrganizationService(db).update_member(tenant, member_id, data)


@router.delete(
    "/current/members/{member_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove member",
    description="Deactivates the membership.",
)
async def remove_member(member_id: UUID, tenant: Manager, db: DbSession) -> None:
    await OrganizationService(db).remove_member(tenant, member_id)
