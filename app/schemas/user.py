"""User profile schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.models import MembershipRole, OrganizationType
from app.schemas.common import CamelModel, RequestModel, StrongPassword


class UpdateUserRequest(RequestModel):
    non_nullable = ("name",)

    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class UpdateDoctorProfileRequest(RequestModel):
    specialty: Optional[str] = None
    bio: Optional[str] = None
    signature_url: Optional[str] = None


class ChangePasswordRequest(RequestModel):
    current_password: str = Field(min_length=1)
    new_password: StrongPassword


class DoctorProfileSummary(CamelModel):
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    bio: Optional[str] = None


class DoctorProfileResponse(CamelModel):
    id: UUID
    user_id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    bio: Optional[str] = None
    signature_url: Optional[str] = None
    crm_verified: bool


class UserOrganization(CamelModel):
    id: UUID
    name: str
    slug: str
    type: OrganizationType


class UserMembership(CamelModel):
    id: UUID
    role: MembershipRole
    is_active: bool
    organization: UserOrganization


class UserResponse(CamelModel):
    """Basic user fields."""

    id: UUID
    email: str
    name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class UserProfileResponse(UserResponse):
    """Authenticated user with doctor profile and active memberships."""

    email_verified: bool
    mfa_enabled: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    doctor_profile: Optional[DoctorProfileSummary] = None
    memberships: list[UserMembership] = []


class MfaStatusResponse(CamelModel):
    mfa_enabled: bool
