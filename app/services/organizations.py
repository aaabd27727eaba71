"""Organization and team membership service."""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.roles import ROLE_HIERARCHY
from app.api.dependencies.tenant import TenantContext
from app.core.security import generate_token
from app.models import (
    DoctorProfile,
    Membership,
    MembershipRole,
    Organization,
    OtpCode,
    OtpType,
    Patient,
    Subscription,
    User,
)
from app.models.base import utcnow
from app.schemas.organization import (
    CurrentOrganizationResponse,
    InviteMemberRequest,
    MemberDoctorProfile,
    MemberResponse,
    OrganizationCounts,
    SubscriptionResponse,
    UpdateMemberRequest,
    UpdateOrganizationRequest,
)
from app.services.task_queue import TaskQueueService, get_task_queue_service

logger = logging.getLogger(__name__)

INVITE_EXPIRE_DAYS = 7


def check_assignable_role(caller: MembershipRole, role: MembershipRole) -> None:
    """
    Members may only grant clinic roles ranked below their own.

    OWNER, SUPER_ADMIN and PATIENT are never assignable here.

    Raises:
        HTTPException: 403 otherwise
    """
    caller_level = ROLE_HIERARCHY.get(caller, 0)
    if role == MembershipRole.OWNER or ROLE_HIERARCHY.get(role, caller_level) >= caller_level:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Você não pode atribuir o cargo {role.value}",
        )


def check_manageable_member(caller: MembershipRole, member: MembershipRole) -> None:
    """Members at or above the caller's level, and platform operators, are off limits."""
    if member == MembershipRole.SUPER_ADMIN or ROLE_HIERARCHY.get(member, 0) >= ROLE_HIERARCHY.get(caller, 0):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Você não pode alterar um membro do mesmo nível ou superior",
        )


class OrganizationService:
    """The caller's current organization and its members."""

    def __init__(self, db: AsyncSession, task_queue: Optional[TaskQueueService] = None) -> None:
        self.db = db
        self.task_queue = task_queue or get_task_queue_service()

    async def get_current(self, organization_id: UUID) -> CurrentOrganizationResponse:
        """
        Organization with latest subscription and member / patient counts.

        Raises:
            HTTPException: 404 if the organization does not exist
        """
        organization = await self.db.get(Organization, organization_id)
        if organization is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organização não encontrada",
            )

        subscription = await self.db.scalar(
            select(Subscription)
            .where(Subscription.organization_id == organization_id)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        members = await self.db.scalar(
            select(func.count(Membership.id)).where(Membership.organization_id == organization_id)
        )
        patients = await self.db.scalar(
            select(func.count(Patient.id)).where(Patient.organization_id == organization_id)
        )

        response = CurrentOrganizationResponse.model_validate(
            {
                **{
                    column.key: getattr(organization, column.key)
                    for column in Organization.__table__.columns
                },
                "_count": OrganizationCounts(members=members or 0, patients=patients or 0),
            }
        )
        response.subscription = SubscriptionResponse.model_validate(subscription) if subscription else None
        return response

    async def update_current(
        self, organization_id: UUID, data: UpdateOrganizationRequest
    ) -> CurrentOrganizationResponse:
        organization = await self.db.get(Organization, organization_id)
        if organization is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organização não encontrada",
            )

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(organization, field, value)
        await self.db.commit()
        return await self.get_current(organization_id)

    async def _doctor_profiles(self, user_ids: list[UUID]) -> dict[UUID, DoctorProfile]:
        if not user_ids:
            return {}
        profiles = await self.db.scalars(select(DoctorProfile).where(DoctorProfile.user_id.in_(user_ids)))
        return {profile.user_id: profile for profile in profiles}

    def _member_response(
        self, membership: Membership, profiles: dict[UUID, DoctorProfile]
    ) -> MemberResponse:
        response = MemberResponse.model_validate(membership)
        profile = profiles.get(membership.user_id)
        response.user.doctor_profile = MemberDoctorProfile.model_validate(profile) if profile else None
        return response

    async def list_members(self, organization_id: UUID) -> list[MemberResponse]:
        """Members in joining order."""
        memberships = (
            await self.db.scalars(
                select(Membership)
                .where(Membership.organization_id == organization_id)
                .order_by(Membership.created_at.asc())
            )
        ).all()
        profiles = await self._doctor_profiles([m.user_id for m in memberships])
        return [self._member_response(m, profiles) for m in memberships]

    async def invite_member(
        self, tenant: TenantContext, data: InviteMemberRequest
    ) -> MemberResponse:
        """
        Add a user to the organization, creating a pending account if needed.

        Raises:
            HTTPException: 403 if the role is not assignable or the user is
                already a member
        """
        check_assignable_role(tenant.role, data.role)
        email = data.email.lower()
        now = utcnow()

        user = await self.db.scalar(select(User).where(User.email == email))
        if user is None:
            user = User(email=email, name=email.split("@")[0], password_hash="")
            self.db.add(user)
            await self.db.flush()
        else:
            existing = await self.db.scalar(
                select(Membership.id).where(
                    Membership.user_id == user.id,
                    Membership.organization_id == tenant.organization_id,
                )
            )
            if existing is not None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Usuário já é membro desta organização",
                )

        membership = Membership(
            user_id=user.id,
            organization_id=tenant.organization_id,
            role=data.role,
            invited_at=now,
        )
        membership.user = user
        membership.organization = tenant.organization
        self.db.add(membership)

        invite_token = generate_token(32)
        self.db.add(
            OtpCode(
                user_id=user.id,
                code=invite_token,
                type=OtpType.PASSWORD_RESET,
                expires_at=now + timedelta(days=INVITE_EXPIRE_DAYS),
            )
        )
        await self.db.commit()

        logger.info(f"Member {user.id} invited to organization {tenant.organization_id} as {data.role.value}")

        await self.task_queue.enqueue_email(
            "organization_invite",
            email,
            {
                "inviter_name": tenant.user.name,
                "organization_name": tenant.organization.name,
                "invite_token": invite_token,
            },
        )

        profiles = await self._doctor_profiles([user.id])
        return self._member_response(membership, profiles)

    async def _get_member(self, organization_id: UUID, member_id: UUID) -> Membership:
        membership = await self.db.scalar(
            select(Membership).where(
                Membership.id == member_id,
                Membership.organization_id == organization_id,
            )
        )
        if membership is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Membro não encontrado")
        return membership

    async def update_member(
        self, tenant: TenantContext, member_id: UUID, data: UpdateMemberRequest
    ) -> MemberResponse:
        """
        Change role or active flag of a member.

        Raises:
            HTTPException: 404 if absent, 403 on self or on the owner
        """
        membership = await self._get_member(tenant.organization_id, member_id)

        if membership.user_id == tenant.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Você não pode alterar seu próprio cargo",
            )
        if membership.role == MembershipRole.OWNER:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Não é possível alterar o cargo do proprietário",
            )
        check_manageable_member(tenant.role, membership.role)
        if data.role is not None:
            check_assignable_role(tenant.role, data.role)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(membership, field, value)
        await self.db.commit()

        profiles = await self._doctor_profiles([membership.user_id])
        return self._member_response(membership, profiles)

    async def remove_member(self, tenant: TenantContext, member_id: UUID) -> None:
        """
        Deactivate a member.

        Raises:
            HTTPException: 404 if absent, 403 on self or on the owner
        """
        membership = await self._get_member(tenant.organization_id, member_id)

        if membership.user_id == tenant.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Você não pode remover a si mesmo",
            )
        if membership.role == MembershipRole.OWNER:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Não é possível remover o proprietário",
            )
        check_manageable_member(tenant.role, membership.role)

        membership.is_active = False
        await self.db.commit()
        logger.info(f"Member {membership.id} removed from organization {tenant.organization_id}")
