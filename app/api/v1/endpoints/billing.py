"""Plans, subscription and Stripe endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Request

from app.api.dependencies import DbSession, Tenant, TenantContext, require_roles
from app.api.dependencies.roles import MANAGERS
from app.models import MembershipRole
from app.schemas.billing import (
    CancelSubscriptionRequest,
    CheckoutRequest,
    CheckoutResponse,
    PortalResponse,
    UsageResponse,
    WebhookAck,
)
from app.schemas.organization import PlanResponse, SubscriptionResponse
from app.services.billing import BillingService

router = APIRouter()

Manager = Annotated[TenantContext, Depends(require_roles(*MANAGERS))]
Owner = Annotated[TenantContext, Depends(require_roles(MembershipRole.OWNER))]


@router.get("/plans", response_model=list[PlanResponse], summary="Available plans")
async def list_plans(db: DbSession) -> list[PlanResponse]:
    return await BillingService(db).list_plans()


@router.get("/subscription", response_model=SubscriptionResponse, summary="Current subscription")
async def current_subscription(tenant: Tenant, db: DbSession) -> SubscriptionResponse:
    return await BillingService(db).current_subscription(tenant.organization_id)


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Plan usage",
    description="Doctors, patients and this month's consultations against the plan limits.",
)
async def usage(tenant: Tenant, db: DbSession) -> UsageResponse:
    return await BillingService(db).usage(tenant.organization_id)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Start checkout",
    description="Stripe Checkout session for the chosen plan. Returns a mock session when Stripe is not configured.",
)
async def checkout(data: CheckoutRequest, tenant: Manager, db: DbSession) -> CheckoutResponse:
    return await BillingService(db).create_checkout_session(tenant.organization_id, data.plan_id, data.billing_cycle)


@router.post("/portal", response_model=PortalResponse, summary="Stripe customer portal")
async def portal(tenant: Manager, db: DbSession) -> PortalResponse:
    return await BillingService(db).create_portal_session(tenant.organization_id)


@router.post("/cancel", response_model=SubscriptionResponse, summary="Cancel subscription")
async def cancel(
    tenant: Owner, db: DbSession, data: Optional[CancelSubscriptionRequest] = None
) -> SubscriptionResponse:
    return await BillingService(db).cancel(tenant.organization_id, data.reason if data else None)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Stripe webhook",
    description="Events are processed only when a webhook secret is configured and Stripe-Signature verifies.",
)
async def webhook(
    request: Request,
    db: DbSession,
    stripe_signature: Annotated[Optional[str], Header(alias="Stripe-Signature")] = None,
) -> WebhookAck:
    payload = await request.body()
    await BillingService(db).handle_webhook(payload, stripe_signature)
    return WebhookAck()
