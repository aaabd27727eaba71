"""Doctor profile lookups shared by clinical services."""

from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import DoctorProfile


async def find_doctor_profile(db: AsyncSession, user_id: UUID) -> Optional[DoctorProfile]:
    return await db.scalar(select(DoctorProfile).where(DoctorProfile.user_id == user_id))


async def require_doctor_profile(db: AsyncSession, user_id: UUID) -> DoctorProfile:
    """
    Doctor profile of the caller.

    Raises:
        HTTPException: 403 if the user has no doctor profile
    """
    profile = await find_doctor_profile(db, user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Perfil de medico nao encontrado",
        )
    return profile
