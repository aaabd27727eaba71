"""Authentication endpoints."""

from typing import Optional

from fastapi import APIRouter, status

from app.api.dependencies import CurrentUser, DbSession
from app.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MeResponse,
    MfaVerifyRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
    VerifyEmailRequest,
)
from app.schemas.common import MessageResponse
from app.services.auth import AuthService

router = APIRouter()


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register doctor",
    description="Create a doctor account with its own clinic and a 7-day trial.",
)
async def register(data: RegisterRequest, db: DbSession) -> AuthResponse:
    return await AuthService(db).register(data)


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Login",
    description="Exchange email and password for tokens, or a temporary token when MFA is enabled.",
)
async def login(data: LoginRequest, db: DbSession) -> LoginResponse:
    return await AuthService(db).login(data)


@router.post("/mfa/verify", response_model=LoginResponse, response_model_exclude_none=True, summary="Verify MFA code")
async def verify_mfa(data: MfaVerifyRequest, db: DbSession) -> LoginResponse:
    return await AuthService(db).verify_mfa(data)


@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Rotate tokens",
    description="Revoke the presented refresh token and issue a new pair.",
)
async def refresh(data: RefreshRequest, db: DbSession) -> TokenPair:
    return await AuthService(db).refresh(data.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Logout")
async def logout(user: CurrentUser, db: DbSession, data: Optional[LogoutRequest] = None) -> None:
    await AuthService(db).logout(user.id, data.refresh_token if data else None)


@router.get("/me", response_model=MeResponse, summary="Current session")
async def me(user: CurrentUser, db: DbSession) -> MeResponse:
    return await AuthService(db).me(user)


@router.post("/forgot-password", response_model=MessageResponse, summary="Request password reset")
async def forgot_password(data: ForgotPasswordRequest, db: DbSession) -> MessageResponse:
    message = await AuthService(db).forgot_password(data.email)
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse, summary="Reset password")
async def reset_password(data: ResetPasswordRequest, db: DbSession) -> MessageResponse:
    await AuthService(db).reset_password(data.token, data.new_password)
    return MessageResponse(message="Senha alterada com sucesso")


@router.post("/verify-email", response_model=MessageResponse, summary="Verify email")
async def verify_email(data: VerifyEmailRequest, user: CurrentUser, db: DbSession) -> MessageResponse:
    await AuthService(db).verify_email(user, data.code)
    return MessageResponse(message="Email verificado com sucesso")
