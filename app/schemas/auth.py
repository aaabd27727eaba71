"""Authentication request and response schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.models import MembershipRole, OrganizationType, SubscriptionStatus
from app.schemas.common import CamelModel, RequestModel, StrongPassword

# ============================================================================
# Requests
# ============================================================================


class RegisterRequest(RequestModel):
    """Doctor self-registration."""

    email: EmailStr = Field(description="Login email")
    password: StrongPassword
    name: str = Field(min_length=3, max_length=100)
    crm: str = Field(min_length=4, max_length=10, description="CRM number")
    uf_crm: str = Field(min_length=2, max_length=2, description="CRM state (UF)")
    phone: Optional[str] = None
    specialty: Optional[str] = None


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)


class MfaVerifyRequest(RequestModel):
    temp_token: str
    code: str = Field(min_length=6, max_length=6)


class RefreshRequest(RequestModel):
    refresh_token: str


class LogoutRequest(RequestModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(RequestModel):
    email: EmailStr


class ResetPasswordRequest(RequestModel):
    token: str
    new_password: StrongPassword


class VerifyEmailRequest(RequestModel):
    code: str = Field(min_length=6, max_length=6)


# ============================================================================
# Responses
# ============================================================================


class AuthUser(CamelModel):
    id: UUID
    email: str
    name: str
    email_verified: bool


class MeUser(AuthUser):
    mfa_enabled: bool


class AuthOrganization(CamelModel):
    id: UUID
    name: str
    slug: str
    type: Optional[OrganizationType] = None
    role: Optional[MembershipRole] = None


class AuthSubscription(CamelModel):
    status: SubscriptionStatus
    trial_ends_at: Optional[datetime] = None


class AuthDoctorProfile(CamelModel):
    id: UUID
    name: str
    crm: str
    uf_crm: str
    specialty: Optional[str] = None


class TokenPair(CamelModel):
    """Access token and opaque refresh token."""

    access_token: str
    refresh_token: str


class AuthResponse(TokenPair):
    """Response of register and completed login."""

    user: AuthUser
    organization: Optional[AuthOrganization] = None
    subscription: Optional[AuthSubscription] = None


class LoginResponse(CamelModel):
    """
    Login response.

    When requires_mfa is true only temp_token and message are set; the
    client completes the login through /auth/mfa/verify.
    """

    requires_mfa: bool
    temp_token: Optional[str] = None
    message: Optional[str] = None
    user: Optional[AuthUser] = None
    organization: Optional[AuthOrganization] = None
    subscription: Optional[AuthSubscription] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class MeResponse(CamelModel):
    user: MeUser
    organization: Optional[AuthOrganization] = None
    doctor_profile: Optional[AuthDoctorProfile] = None
    subscription: Optional[AuthSubscription] = None
