"""Plans, subscriptions and Stripe billing through the Stripe SDK."""

import calendar
import json
import logging
import time
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import stripe
from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models import (
    BillingCycle,
    Consultation,
    Membership,
    MembershipRole,
    Organization,
    Patient,
    Plan,
    Subscription,
    SubscriptionStatus,
    User,
)
from app.models.base import utcnow
from app.schemas.billing import (
    CheckoutResponse,
    PortalResponse,
    Usage,
    UsageMeter,
    UsageResponse,
    UsageSubscription,
)
from app.schemas.organization import PlanResponse, SubscriptionResponse
from app.utils.timezones import local_today, month_bounds

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "trialing": SubscriptionStatus.TRIAL,
}


def add_months(moment: datetime, months: int) -> datetime:
    """Same day `months` later, clamped to the end of shorter months."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def calculate_period_end(billing_cycle: BillingCycle, start: Optional[datetime] = None) -> datetime:
    start = start or utcnow()
    return add_months(start, 12 if billing_cycle == BillingCycle.YEARLY else 1)


def verify_webhook_signature(payload: bytes, header: Optional[str], secret: str) -> None:
    """
    Check a Stripe-Signature header against the raw body.

    Raises:
        stripe.SignatureVerificationError: On a missing, malformed, stale or
            wrong signature
    """
    if not header:
        raise stripe.SignatureVerificationError("Missing Stripe-Signature header", header)
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise stripe.SignatureVerificationError("Payload is not UTF-8", header) from e
    stripe.WebhookSignature.verify_header(
        body, header, secret, tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
    )


class StripeGateway:
    """The Stripe calls billing needs, on top of `stripe.StripeClient`."""

    def __init__(self, secret_key: Optional[str] = None) -> None:
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self._client: Optional[stripe.StripeClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            self._client = stripe.StripeClient(
                self.secret_key,
                base_addresses={"api": settings.STRIPE_API_URL},
            )
        return self._client

    async def create_checkout_session(self, params: dict[str, Any]) -> Any:
        return await self.client.v1.checkout.sessions.create_async(params=params)

    async def create_portal_session(self, customer: str, return_url: str) -> Any:
        return await self.client.v1.billing_portal.sessions.create_async(
            params={"customer": customer, "return_url": return_url}
        )

    async def cancel_at_period_end(self, subscription_id: str, reason: str) -> Any:
        return await self.client.v1.subscriptions.update_async(
            subscription_id,
            params={"cancel_at_period_end": True, "metadata": {"cancelReason": reason}},
        )


class BillingService:
    """Subscription management for an organization."""

    def __init__(self, db: AsyncSession, stripe_gateway: Optional[StripeGateway] = None) -> None:
        self.db = db
        self.stripe = stripe_gateway or StripeGateway()

    async def list_plans(self) -> list[PlanResponse]:
        plans = await self.db.scalars(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.sort_order.asc())
        )
        return [PlanResponse.model_validate(p) for p in plans]

    async def _latest_subscription(self, organization_id: UUID) -> Optional[Subscription]:
        return await self.db.scalar(
            select(Subscription)
            .where(Subscription.organization_id == organization_id)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )

    async def _require_subscription(self, organization_id: UUID) -> Subscription:
        subscription = await self._latest_subscription(organization_id)
        if subscription is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription nao encontrada")
        return subscription

    async def current_subscription(self, organization_id: UUID) -> SubscriptionResponse:
        return SubscriptionResponse.model_validate(await self._require_subscription(organization_id))

    async def usage(self, organization_id: UUID) -> UsageResponse:
        """Doctors, patients and this month's consultations against plan limits."""
        subscription = await self._require_subscription(organization_id)
        plan = subscription.plan
        month_start, _ = month_bounds(local_today())

        doctors = await self.db.scalar(
            select(func.count(Membership.id)).where(
                Membership.organization_id == organization_id,
                Membership.role == MembershipRole.DOCTOR,
                Membership.is_active.is_(True),
            )
        ) or 0
        patients = await self.db.scalar(
            select(func.count(Patient.id)).where(Patient.organization_id == organization_id)
        ) or 0
        consultations = await self.db.scalar(
            select(func.count(Consultation.id)).where(
                Consultation.organization_id == organization_id,
                Consultation.created_at >= month_start,
            )
        ) or 0

        def meter(current: int, limit: int) -> UsageMeter:
            percentage = round(current / limit * 100) if limit > 0 else 0
            return UsageMeter(current=current, limit=limit, percentage=percentage)

        return UsageResponse(
            subscription=UsageSubscription(
                id=subscription.id,
                status=subscription.status,
                plan=plan.display_name,
                billing_cycle=subscription.billing_cycle,
                current_period_end=subscription.current_period_end,
            ),
            usage=Usage(
                doctors=meter(doctors, plan.max_doctors),
                patients=meter(patients, plan.max_patients),
                consultations=meter(consultations, plan.max_consultations),
            ),
        )

    async def create_checkout_session(
        self, organization_id: UUID, plan_id: UUID, billing_cycle: BillingCycle
    ) -> CheckoutResponse:
        """
        Stripe Checkout session for a plan; a mock session without Stripe.

        Raises:
            HTTPException: 404 unknown plan, 400 missing price or Stripe error
        """
        plan = await self.db.get(Plan, plan_id)
        if plan is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plano nao encontrado")

        if not self.stripe.is_configured:
            logger.warning("Stripe not configured - returning mock checkout URL")
            session_id = f"mock_{int(time.time() * 1000)}"
            return CheckoutResponse(
                checkout_url=f"/billing/success?session_id={session_id}",
                session_id=session_id,
            )

        price_id = (
            plan.stripe_price_id_yearly
            if billing_cycle == BillingCycle.YEARLY
            else plan.stripe_price_id_monthly
        )
        if not price_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Plano {plan.name} nao possui preco Stripe configurado para {billing_cycle.value}",
            )

        metadata = {"organizationId": str(organization_id), "planId": str(plan.id)}
        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{settings.FRONTEND_URL}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.FRONTEND_URL}/billing?canceled=true",
            "metadata": {**metadata, "billingCycle": billing_cycle.value},
            "subscription_data": {"metadata": metadata},
        }

        existing = await self._latest_subscription(organization_id)
        if existing is not None and existing.stripe_customer_id:
            params["customer"] = existing.stripe_customer_id
        else:
            owner_email = await self.db.scalar(
                select(User.email)
                .join(Membership, Membership.user_id == User.id)
                .where(
                    Membership.organization_id == organization_id,
                    Membership.role == MembershipRole.OWNER,
                )
                .limit(1)
            )
            if owner_email:
                params["customer_email"] = owner_email

        try:
            session = await self.stripe.create_checkout_session(params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session error: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Erro ao criar sessao de checkout",
            ) from e

        return CheckoutResponse(checkout_url=session.url, session_id=session.id)

    async def create_portal_session(self, organization_id: UUID) -> PortalResponse:
        subscription = await self._latest_subscription(organization_id)
        if subscription is None or not subscription.stripe_customer_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Organizacao nao possui cliente Stripe",
            )

        if not self.stripe.is_configured:
            logger.warning("Stripe not configured - returning mock portal URL")
            return PortalResponse(portal_url="/billing")

        try:
            session = await self.stripe.create_portal_session(
                subscription.stripe_customer_id, f"{settings.FRONTEND_URL}/billing"
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe portal session error: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Erro ao criar sessao do portal",
            ) from e

        return PortalResponse(portal_url=session.url)

    async def cancel(self, organization_id: UUID, reason: Optional[str] = None) -> SubscriptionResponse:
        """Cancel locally; the Stripe subscription ends at period end."""
        subscription = await self._require_subscription(organization_id)

        if self.stripe.is_configured and subscription.stripe_sub_id:
            try:
                await self.stripe.cancel_at_period_end(
                    subscription.stripe_sub_id, reason or "User requested"
                )
            except stripe.StripeError as e:
                # Local cancellation proceeds
                logger.error(f"Stripe cancel error: {e}")

        subscription.status = SubscriptionStatus.CANCELED
        subscription.canceled_at = utcnow()
        subscription.cancel_reason = reason
        await self.db.commit()

        logger.info(f"Subscription {subscription.id} canceled")
        return SubscriptionResponse.model_validate(subscription)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verify and dispatch a Stripe event.

        Without STRIPE_WEBHOOK_SECRET no event can be trusted, so the event is
        acknowledged and ignored. Returns whether the event was processed.

        Raises:
            HTTPException: 400 on a bad signature, an unparseable body or
                unusable metadata
        """
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.warning("Stripe webhook secret not configured - ignoring webhook")
            return False

        try:
            verify_webhook_signature(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Webhook signature verification failed",
            ) from e

        try:
            event = json.loads(payload)
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from e

        logger.info(f"Processing Stripe event: {event_type}")

        handlers = {
            "checkout.session.completed": self._checkout_completed,
            "customer.subscription.created": self._subscription_updated,
            "customer.subscription.updated": self._subscription_updated,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_succeeded": self._invoice_paid,
            "invoice.payment_failed": self._invoice_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            return True

        await handler(obj)
        await self.db.commit()
        return True

    async def _by_stripe_sub(self, stripe_sub_id: Optional[str]) -> Optional[Subscription]:
        if not stripe_sub_id:
            return None
        return await self.db.scalar(
            select(Subscription).where(Subscription.stripe_sub_id == stripe_sub_id).limit(1)
        )

    @staticmethod
    def _ref_id(value: Any) -> Optional[str]:
        """Stripe references are ids or expanded objects."""
        if isinstance(value, dict):
            return value.get("id")
        return value

    @staticmethod
    def _metadata_uuid(metadata: dict[str, Any], key: str) -> UUID:
        try:
            return UUID(str(metadata[key]))
        except ValueError as e:
            logger.error(f"Invalid {key} in webhook metadata: {metadata[key]!r}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Metadata invalida no evento: {key}",
            ) from e

    async def _checkout_completed(self, session: dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        if not metadata.get("organizationId") or not metadata.get("planId"):
            logger.error("Missing metadata in checkout session")
            return

        organization_id = self._metadata_uuid(metadata, "organizationId")
        plan_id = self._metadata_uuid(metadata, "planId")
        try:
            billing_cycle = BillingCycle(metadata.get("billingCycle") or BillingCycle.MONTHLY.value)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Metadata invalida no evento: billingCycle",
            ) from e
        if await self.db.get(Plan, plan_id) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Metadata invalida no evento: planId",
            )

        now = utcnow()
        values = {
            "plan_id": plan_id,
            "status": SubscriptionStatus.ACTIVE,
            "billing_cycle": billing_cycle,
            "stripe_customer_id": self._ref_id(session.get("customer")),
            "stripe_sub_id": self._ref_id(session.get("subscription")),
            "current_period_start": now,
            "current_period_end": calculate_period_end(billing_cycle, now),
        }

        subscription = await self._latest_subscription(organization_id)
        if subscription is not None:
            for field, value in values.items():
                setattr(subscription, field, value)
            subscription.trial_ends_at = None
        elif await self.db.get(Organization, organization_id) is not None:
            self.db.add(Subscription(organization_id=organization_id, **values))
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Metadata invalida no evento: organizationId",
            )

        logger.info(f"Checkout completed for organization {organization_id}")

    async def _subscription_updated(self, stripe_sub: dict[str, Any]) -> None:
        metadata = stripe_sub.get("metadata") or {}
        if metadata.get("organizationId"):
            subscription = await self._latest_subscription(self._metadata_uuid(metadata, "organizationId"))
        else:
            subscription = await self._by_stripe_sub(stripe_sub.get("id"))

        if subscription is None:
            logger.warning(f"No subscription found for Stripe sub {stripe_sub.get('id')}")
            return

        now = utcnow()
        period_start = stripe_sub.get("current_period_start")
        period_end = stripe_sub.get("current_period_end")

        subscription.status = STRIPE_STATUS_MAP.get(stripe_sub.get("status"), SubscriptionStatus.ACTIVE)
        subscription.current_period_start = (
            datetime.fromtimestamp(period_start, tz=now.tzinfo) if period_start else now
        )
        subscription.current_period_end = (
            datetime.fromtimestamp(period_end, tz=now.tzinfo)
            if period_end
            else calculate_period_end(BillingCycle.MONTHLY, now)
        )
        subscription.stripe_sub_id = stripe_sub.get("id")
        subscription.stripe_customer_id = self._ref_id(stripe_sub.get("customer"))

        logger.info(f"Subscription {subscription.id} updated from Stripe")

    async def _subscription_deleted(self, stripe_sub: dict[str, Any]) -> None:
        subscription = await self._by_stripe_sub(stripe_sub.get("id"))
        if subscription is None:
            logger.warning(f"No subscription found for deleted Stripe sub {stripe_sub.get('id')}")
            return

        subscription.status = SubscriptionStatus.CANCELED
        subscription.canceled_at = utcnow()
        logger.info(f"Subscription {subscription.id} marked as canceled")

    async def _invoice_paid(self, invoice: dict[str, Any]) -> None:
        subscription = await self._by_stripe_sub(self._ref_id(invoice.get("subscription")))
        if subscription is None:
            return

        now = utcnow()
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.current_period_start = now
        subscription.current_period_end = calculate_period_end(subscription.billing_cycle, now)
        logger.info(f"Invoice payment succeeded for subscription {subscription.id}")

    async def _invoice_failed(self, invoice: dict[str, Any]) -> None:
        subscription = await self._by_stripe_sub(self._ref_id(invoice.get("subscription")))
        if subscription is None:
            return

        subscription.status = SubscriptionStatus.PAST_DUE
        logger.info(f"Invoice payment failed for subscription {subscription.id}")
