"""User profile service."""

import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password, verify_password
from app.models import DoctorProfile, Membership, User
from app.schemas.user import (
    ChangePasswordRequest,
    DoctorProfileResponse,
    DoctorProfileSummary,
    UpdateDoctorProfileRequest,
    UpdateUserRequest,
    UserMembership,
    UserProfileResponse,
)

logger = logging.getLogger(__name__)


class UserService:
    """Operations on the authenticated user's own account."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_profile(self, user: User) -> UserProfileResponse:
        """User with doctor profile and active memberships."""
        profile = await self.db.scalar(select(DoctorProfile).where(DoctorProfile.user_id == user.id))
        memberships = (
            await self.db.scalars(
                select(Membership)
                .where(Membership.user_id == user.id, Membership.is_active.is_(True))
                .order_by(Membership.created_at.asc())
            )
        ).all()

        response = UserProfileResponse.model_validate(user)
        response.doctor_profile = DoctorProfileSummary.model_validate(profile) if profile else None
        response.memberships = [UserMembership.model_validate(m) for m in memberships]
        return response

    async def update(self, user: User, data: UpdateUserRequest) -> User:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)
        await self.db.commit()
        return user

    async def update_doctor_profile(
        self, user: User, data: UpdateDoctorProfileRequest
    ) -> DoctorProfileResponse:
        """
        Update bio, specialty and signature.

        Raises:
            HTTPException: 404 if the user is not a doctor
        """
        profile = await self.db.scalar(select(DoctorProfile).where(DoctorProfile.user_id == user.id))
        if profile is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Perfil de médico não encontrado",
            )

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(profile, field, value)
        await self.db.commit()
        return DoctorProfileResponse.model_validate(profile)

    async def change_password(self, user: User, data: ChangePasswordRequest) -> str:
        """
        Replace the password after checking the current one.

        Raises:
            HTTPException: 400 if the current password is wrong
        """
        if not verify_password(data.current_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Senha atual incorreta",
            )

        user.password_hash = hash_password(data.new_password)
        await self.db.commit()
        logger.info(f"Password changed for user {user.id}")
        return "Senha alterada com sucesso"

    async def set_mfa(self, user: User, enabled: bool) -> bool:
        user.mfa_enabled = enabled
        await self.db.commit()
        return user.mfa_enabled
