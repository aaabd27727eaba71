"""Organization and membership schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.models import BillingCycle, MembershipRole, OrganizationType, SubscriptionStatus
from app.schemas.common import CamelModel, TenantRequestModel


class UpdateOrganizationRequest(TenantRequestModel):
    non_nullable = ("name", "settings")

    name: Optional[str] = Field(default=None, min_length=3, max_length=255)
    logo: Optional[str] = None
    settings: Optional[dict[str, Any]] = None


class InviteMemberRequest(TenantRequestModel):
    email: EmailStr
    role: MembershipRole


class UpdateMemberRequest(TenantRequestModel):
    non_nullable = ("role", "is_active")

    role: Optional[MembershipRole] = None
    is_active: Optional[bool] = None


class PlanResponse(CamelModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    price_monthly: Decimal
    price_yearly: Decimal
    max_doctors: int
    max_patients: int
    max_consultations: int
    features: list[Any] = []
    is_active: bool
    sort_order: int


class SubscriptionResponse(CamelModel):
    id: UUID
    organization_id: UUID
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    trial_ends_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    plan: PlanResponse


class OrganizationResponse(CamelModel):
    id: UUID
    name: str
    slug: str
    type: OrganizationType
    logo: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    settings: dict[str, Any] = {}
    is_active: bool
    created_at: datetime


class OrganizationCounts(CamelModel):
    members: int
    patients: int


class CurrentOrganizationResponse(OrganizationResponse):
    subscription: Optional[SubscriptionResponse] = None
    count: OrganizationCounts = Field(alias="_count")


class MemberDoctorProfile(CamelModel):
    crm: str
    uf_crm: str
    specialty: Optional[str] = None


class MemberUser(CamelModel):
    id: UUID
    email: str
    name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    last_login_at: Optional[datetime] = None
    doctor_profile: Optional[MemberDoctorProfile] = None


class MemberResponse(CamelModel):
    id: UUID
    user_id: UUID
    organization_id: UUID
    role: MembershipRole
    is_active: bool
    invited_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    created_at: datetime
    user: MemberUser
