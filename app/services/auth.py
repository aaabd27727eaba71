"""Authentication service - registration, login, MFA and token rotation."""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import (
    TOKEN_TYPE_TEMP,
    TokenError,
    create_access_token,
    create_temp_token,
    decode_token,
    generate_otp,
    generate_token,
    hash_password,
    slugify,
    verify_password,
)
from app.models import (
    DoctorProfile,
    Membership,
    MembershipRole,
    Organization,
    OrganizationType,
    OtpCode,
    OtpType,
    Plan,
    RefreshToken,
    Subscription,
    SubscriptionStatus,
    User,
)
from app.models.base import utcnow
from app.schemas.auth import (
    AuthDoctorProfile,
    AuthOrganization,
    AuthResponse,
    AuthSubscription,
    AuthUser,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MeUser,
    MfaVerifyRequest,
    RegisterRequest,
    TokenPair,
)
from app.services.task_queue import TaskQueueService, get_task_queue_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Email ou senha inválidos"
FORGOT_PASSWORD_MESSAGE = "Se o email estiver cadastrado, você receberá as instruções de redefinição"


class AuthService:
    """Account lifecycle and session tokens."""

    def __init__(self, db: AsyncSession, task_queue: Optional[TaskQueueService] = None) -> None:
        self.db = db
        self.task_queue = task_queue or get_task_queue_service()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def issue_tokens(self, user: User) -> TokenPair:
        """Access JWT plus a persisted opaque refresh token."""
        refresh_token = generate_token(64)
        self.db.add(
            RefreshToken(
                user_id=user.id,
                token=refresh_token,
                expires_at=utcnow() + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
            )
        )
        await self.db.commit()
        return TokenPair(
            access_token=create_access_token(str(user.id), user.email),
            refresh_token=refresh_token,
        )

    async def _primary_membership(self, user_id: UUID) -> Optional[Membership]:
        return await self.db.scalar(
            select(Membership)
            .where(Membership.user_id == user_id, Membership.is_active.is_(True))
            .order_by(Membership.created_at.asc())
            .limit(1)
        )

    async def _latest_subscription(self, organization_id: UUID) -> Optional[Subscription]:
        return await self.db.scalar(
            select(Subscription)
            .where(Subscription.organization_id == organization_id)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )

    async def _session_context(
        self, user: User, include_type: bool = False
    ) -> tuple[Optional[AuthOrganization], Optional[AuthSubscription]]:
        membership = await self._primary_membership(user.id)
        if membership is None:
            return None, None

        organization = membership.organization
        subscription = await self._latest_subscription(organization.id)
        return (
            AuthOrganization(
                id=organization.id,
                name=organization.name,
                slug=organization.slug,
                type=organization.type if include_type else None,
                role=membership.role,
            ),
            AuthSubscription.model_validate(subscription) if subscription else None,
        )

    async def _complete_login(self, user: User) -> LoginResponse:
        organization, subscription = await self._session_context(user)
        tokens = await self.issue_tokens(user)
        return LoginResponse(
            requires_mfa=False,
            user=AuthUser.model_validate(user),
            organization=organization,
            subscription=subscription,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    async def _find_valid_otp(self, user_id: UUID, code: str, otp_type: OtpType) -> Optional[OtpCode]:
        return await self.db.scalar(
            select(OtpCode)
            .where(
                OtpCode.user_id == user_id,
                OtpCode.type == otp_type,
                OtpCode.code == code,
                OtpCode.used_at.is_(None),
                OtpCode.expires_at > utcnow(),
            )
            .order_by(OtpCode.created_at.desc())
            .limit(1)
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def register(self, data: RegisterRequest) -> AuthResponse:
        """
        Self-register a doctor with a personal clinic on a SOLO trial.

        Raises:
            HTTPException: 409 on duplicate email or CRM, 400 without SOLO plan
        """
        email = data.email.lower()
        uf_crm = data.uf_crm.upper()

        if await self.db.scalar(select(User.id).where(User.email == email)):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email já cadastrado")

        crm_taken = await self.db.scalar(
            select(DoctorProfile.id).where(DoctorProfile.crm == data.crm, DoctorProfile.uf_crm == uf_crm)
        )
        if crm_taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="CRM já cadastrado")

        plan = await self.db.scalar(select(Plan).where(Plan.name == "SOLO"))
        if plan is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Plano SOLO não encontrado. Execute o seed.",
            )

        now = utcnow()
        user = User(
            email=email,
            password_hash=hash_password(data.password),
            name=data.name,
            phone=data.phone,
        )
        self.db.add(user)
        await self.db.flush()

        organization = Organization(
            name=f"Consultório {data.name}",
            slug=slugify(data.name),
            type=OrganizationType.CLINICA,
            settings={},
        )
        self.db.add(organization)
        await self.db.flush()

        subscription = Subscription(
            organization_id=organization.id,
            plan_id=plan.id,
            status=SubscriptionStatus.TRIAL,
            trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
        )
        verification_code = generate_otp(6)
        self.db.add_all(
            [
                DoctorProfile(
                    user_id=user.id,
                    crm=data.crm,
                    uf_crm=uf_crm,
                    specialty=data.specialty,
                ),
                Membership(
                    user_id=user.id,
                    organization_id=organization.id,
                    role=MembershipRole.OWNER,
                    joined_at=now,
                ),
                subscription,
                OtpCode(
                    user_id=user.id,
                    code=verification_code,
                    type=OtpType.EMAIL_VERIFY,
                    expires_at=now + timedelta(minutes=settings.EMAIL_VERIFY_EXPIRE_MINUTES),
                ),
            ]
        )
        tokens = await self.issue_tokens(user)

        logger.info(f"User registered: {user.id} (organization {organization.id})")

        await self.task_queue.enqueue_email("welcome", email, {"name": user.name})
        await self.task_queue.enqueue_email(
            "email_verification", email, {"name": user.name, "code": verification_code}
        )

        return AuthResponse(
            user=AuthUser.model_validate(user),
            organization=AuthOrganization(
                id=organization.id,
                name=organization.name,
                slug=organization.slug,
                role=MembershipRole.OWNER,
            ),
            subscription=AuthSubscription.model_validate(subscription),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    async def login(self, data: LoginRequest) -> LoginResponse:
        """
        Password login. Users with MFA get a temp token and an emailed code.

        Raises:
            HTTPException: 401 on bad credentials or inactive account
        """
        user = await self.db.scalar(select(User).where(User.email == data.email.lower()))

        if user is None or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

        if not verify_password(data.password, user.password_hash):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

        user.last_login_at = utcnow()

        if user.mfa_enabled:
            code = generate_otp(6)
            self.db.add(
                OtpCode(
                    user_id=user.id,
                    code=code,
                    type=OtpType.MFA,
                    expires_at=utcnow() + timedelta(minutes=settings.MFA_CODE_EXPIRE_MINUTES),
                )
            )
            await self.db.commit()

            await self.task_queue.enqueue_email(
                "mfa_code",
                user.email,
                {"name": user.name, "code": code, "expires_minutes": settings.MFA_CODE_EXPIRE_MINUTES},
            )
            return LoginResponse(
                requires_mfa=True,
                temp_token=create_temp_token(str(user.id), user.email),
                message="Código de verificação enviado para seu email",
            )

        await self.db.commit()
        return await self._complete_login(user)

    async def verify_mfa(self, data: MfaVerifyRequest) -> LoginResponse:
        """
        Second login step for MFA users.

        Raises:
            HTTPException: 401 on expired temp token or wrong code
        """
        try:
            payload = decode_token(data.temp_token, expected_type=TOKEN_TYPE_TEMP)
            user_id = UUID(payload["sub"])
        except (TokenError, ValueError) as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expirado. Faça login novamente.",
            ) from e

        otp = await self._find_valid_otp(user_id, data.code, OtpType.MFA)
        if otp is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Código inválido ou expirado",
            )
        otp.used_at = utcnow()

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não encontrado")

        await self.db.commit()
        return await self._complete_login(user)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token.

        Raises:
            HTTPException: 401 if unknown, revoked or expired
        """
        record = await self.db.scalar(select(RefreshToken).where(RefreshToken.token == refresh_token))

        if record is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token inválido")
        if record.revoked_at is not None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token revogado")
        if record.expires_at < utcnow():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token expirado")

        user = await self.db.get(User, record.user_id)
        if user is None or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não encontrado")

        record.revoked_at = utcnow()
        return await self.issue_tokens(user)

    async def logout(self, user_id: UUID, refresh_token: Optional[str] = None) -> None:
        """Revoke one refresh token, or all of the user's tokens."""
        stmt = update(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        if refresh_token:
            stmt = stmt.where(RefreshToken.token == refresh_token)

        await self.db.execute(stmt.values(revoked_at=utcnow()))
        await self.db.commit()

    async def me(self, user: User) -> MeResponse:
        organization, subscription = await self._session_context(user, include_type=True)
        profile = await self.db.scalar(select(DoctorProfile).where(DoctorProfile.user_id == user.id))

        return MeResponse(
            user=MeUser.model_validate(user),
            organization=organization,
            doctor_profile=(
                AuthDoctorProfile(
                    id=profile.id,
                    name=user.name,
                    crm=profile.crm,
                    uf_crm=profile.uf_crm,
                    specialty=profile.specialty,
                )
                if profile
                else None
            ),
            subscription=subscription,
        )

    async def forgot_password(self, email: str) -> str:
        """Queue a reset link when the account exists. Same answer either way."""
        user = await self.db.scalar(select(User).where(User.email == email.lower()))

        if user is not None and user.is_active:
            token = generate_token(32)
            self.db.add(
                OtpCode(
                    user_id=user.id,
                    code=token,
                    type=OtpType.PASSWORD_RESET,
                    expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
                )
            )
            await self.db.commit()
            await self.task_queue.enqueue_email(
                "password_reset", user.email, {"name": user.name, "reset_token": token}
            )
        else:
            logger.info("Password reset requested for unknown email")

        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Set a new password from a reset token and end every session.

        Raises:
            HTTPException: 400 if the token is invalid, used or expired
        """
        otp = await self.db.scalar(
            select(OtpCode).where(
                OtpCode.code == token,
                OtpCode.type == OtpType.PASSWORD_RESET,
                OtpCode.used_at.is_(None),
                OtpCode.expires_at > utcnow(),
            )
        )
        if otp is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Token inválido ou expirado",
            )

        user = await self.db.get(User, otp.user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token inválido ou expirado")

        now = utcnow()
        otp.used_at = now
        user.password_hash = hash_password(new_password)
        await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        await self.db.commit()
        logger.info(f"Password reset for user {user.id}")

    async def verify_email(self, user: User, code: str) -> None:
        """
        Confirm the account email with the code sent at registration.

        Raises:
            HTTPException: 400 on wrong or expired code
        """
        otp = await self._find_valid_otp(user.id, code, OtpType.EMAIL_VERIFY)
        if otp is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Código inválido ou expirado",
            )

        otp.used_at = utcnow()
        user.email_verified = True
        await self.db.commit()
