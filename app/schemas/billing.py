"""Billing schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.models import BillingCycle, SubscriptionStatus
from app.schemas.common import CamelModel, TenantRequestModel


class CheckoutRequest(TenantRequestModel):
    plan_id: UUID
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class CancelSubscriptionRequest(TenantRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class CheckoutResponse(CamelModel):
    checkout_url: str
    session_id: str


class PortalResponse(CamelModel):
    portal_url: str


class UsageMeter(CamelModel):
    current: int
    limit: int = Field(description="-1 means unlimited")
    percentage: int


class UsageSubscription(CamelModel):
    id: UUID
    status: SubscriptionStatus
    plan: str
    billing_cycle: BillingCycle
    current_period_end: Optional[datetime] = None


class Usage(CamelModel):
    doctors: UsageMeter
    patients: UsageMeter
    consultations: UsageMeter


class UsageResponse(CamelModel):
    subscription: UsageSubscription
    usage: Usage


class WebhookAck(CamelModel):
    received: bool = True
