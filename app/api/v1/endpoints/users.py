"""Endpoints for the authenticated user's own account."""

from fastapi import APIRouter

from app.api.dependencies import CurrentUser, DbSession
from app.schemas.common import MessageResponse
from app.schemas.user import (
    ChangePasswordRequest,
    DoctorProfileResponse,
    MfaStatusResponse,
    UpdateDoctorProfileRequest,
    UpdateUserRequest,
    UserProfileResponse,
    UserResponse,
)
from app.services.users import UserService

router = APIRouter()


@router.get("/me", response_model=UserProfileResponse, summary="Get own profile")
async def get_me(user: CurrentUser, db: DbSession) -> UserProfileResponse:
    return await UserService(db).get_profile(user)


@router.patch("/me", response_model=UserResponse, summary="Update own profile")
async def update_me(data: UpdateUserRequest, user: CurrentUser, db: DbSession) -> UserResponse:
    updated = await UserService(db).update(user, data)
    return UserResponse.model_validate(updated)


@router.patch(
    "/me/doctor-profile",
    response_model=DoctorProfileResponse,
    summary="Update doctor profile",
    description="Specialty, bio and signature image of the caller's doctor profile.",
)
async def update_doctor_profile(
    data: UpdateDoctorProfileRequest, user: CurrentUser, db: DbSession
) -> DoctorProfileResponse:
    return await UserService(db).update_doctor_profile(user, data)


@router.post("/me/change-password", response_model=MessageResponse, summary="Change password")
async def change_password(data: ChangePasswordRequest, user: CurrentUser, db: DbSession) -> MessageResponse:
    message = await UserService(db).change_password(user, data)
    return MessageResponse(message=message)


@router.post("/me/mfa/enable", response_model=MfaStatusResponse, summary="Enable MFA")
async def enable_mfa(user: CurrentUser, db: DbSession) -> MfaStatusResponse:
    return MfaStatusResponse(mfa_enabled=await UserService(db).set_mfa(user, True))


@router.post("/me/mfa/disable", response_model=MfaStatusResponse, summary="Disable MFA")
async def disable_mfa(user: CurrentUser, db: DbSession) -> MfaStatusResponse:
    return MfaStatusResponse(mfa_enabled=await UserService(db).set_mfa(user, False))
