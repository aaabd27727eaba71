"""
Billing tests: period arithmetic, Stripe signatures, webhook events,
checkout and cancellation.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest
import stripe
from fastapi import HTTPException

from app.core.config import settings
from app.models import BillingCycle, MembershipRole, Subscription, SubscriptionStatus
from app.services.billing import (
    BillingService,
    StripeGateway,
    add_months,
    calculate_period_end,
    verify_webhook_signature,
)

WEBHOOK_SECRET = "whsec_test_secret"


class RecordingStripe(StripeGateway):
    """Stripe gateway that records calls instead of reaching the API."""

    def __init__(self) -> None:
        super().__init__(secret_key="sk_test_fake")
        self.calls: list[tuple[str, Any]] = []

    async def create_checkout_session(self, params: dict[str, Any]) -> Any:
        self.calls.append(("checkout", params))
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

    async def create_portal_session(self, customer: str, return_url: str) -> Any:
        self.calls.append(("portal", customer))
        return SimpleNamespace(url="https://billing.stripe.com/p/session/test")

    async def cancel_at_period_end(self, subscription_id: str, reason: str) -> Any:
        self.calls.append(("cancel", subscription_id))
        raise stripe.APIConnectionError("Stripe unreachable")


def _sign(payload: bytes, timestamp: int, secret: str = WEBHOOK_SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _event(event_type: str, obj: dict[str, Any]) -> bytes:
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": obj}}).encode()


async def _deliver(client, event_type: str, obj: dict[str, Any]):
    payload = _event(event_type, obj)
    return await client.post(
        "/api/v1/billing/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, int(time.time()))},
    )


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


# ============================================================================
# Period arithmetic
# ============================================================================


def test_add_months_clamps_to_month_end():
    jan_31 = datetime(2026, 1, 31, 10, 0, tzinfo=timezone.utc)

    assert add_months(jan_31, 1) == datetime(2026, 2, 28, 10, 0, tzinfo=timezone.utc)
    assert add_months(jan_31, 13) == datetime(2027, 2, 28, 10, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2027, 11, 15, tzinfo=timezone.utc), 3) == datetime(2028, 2, 15, tzinfo=timezone.utc)


def test_calculate_period_end():
    start = datetime(2026, 3, 10, tzinfo=timezone.utc)

    assert calculate_period_end(BillingCycle.MONTHLY, start) == datetime(2026, 4, 10, tzinfo=timezone.utc)
    assert calculate_period_end(BillingCycle.YEARLY, start) == datetime(2027, 3, 10, tzinfo=timezone.utc)


# ============================================================================
# Signatures
# ============================================================================


def test_verify_webhook_signature_accepts_valid_header():
    payload = b'{"type": "ping"}'

    verify_webhook_signature(payload, _sign(payload, int(time.time())), WEBHOOK_SECRET)


@pytest.mark.parametrize(
    "header",
    [None, "", "v1=abc", "t=1700000000", "t=1700000000,v1=deadbeef"],
)
def test_verify_webhook_signature_rejects_bad_headers(header):
    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook_signature(b"{}", header, WEBHOOK_SECRET)


def test_verify_webhook_signature_rejects_stale_and_foreign():
    payload = b"{}"

    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook_signature(payload, _sign(payload, int(time.time()) - 1000), WEBHOOK_SECRET)

    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook_signature(payload, _sign(payload, int(time.time()), "whsec_other"), WEBHOOK_SECRET)


# ============================================================================
# Plans, usage and subscription
# ============================================================================


async def test_plans_are_public(client, solo_plan):
    response = await client.get("/api/v1/billing/plans")

    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["SOLO"]


async def test_usage_counts(client, clinic, patient, make_consultation):
    await make_consultation(clinic.organization, patient, clinic.doctor)

    response = await client.get("/api/v1/billing/usage", headers=clinic.headers)

    assert response.status_code == 200
    body = response.json()
    assert body["subscription"]["plan"] == "Solo"
    assert body["usage"]["patients"] == {"current": 1, "limit": 100, "percentage": 1}
    assert body["usage"]["consultations"] == {"current": 1, "limit": -1, "percentage": 0}


async def test_current_subscription(client, clinic):
    response = await client.get("/api/v1/billing/subscription", headers=clinic.headers)

    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"
    assert response.json()["plan"]["name"] == "SOLO"


# ============================================================================
# Checkout, portal and cancel
# ============================================================================


async def test_checkout_without_stripe_returns_mock(client, clinic, solo_plan):
    response = await client.post(
        "/api/v1/billing/checkout", json={"planId": str(solo_plan.id)}, headers=clinic.headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["sessionId"].startswith("mock_")
    assert body["checkoutUrl"] == f"/billing/success?session_id={body['sessionId']}"


async def test_checkout_sends_price_and_owner_email(db_session, clinic, solo_plan):
    solo_plan.stripe_price_id_yearly = "price_solo_yearly"
    await db_session.commit()
    stripe_gateway = RecordingStripe()

    response = await BillingService(db_session, stripe_gateway).create_checkout_session(
        clinic.organization.id, solo_plan.id, BillingCycle.YEARLY
    )

    assert response.session_id == "cs_test_123"
    path, params = stripe_gateway.calls[0]
    assert path == "checkout"
    assert params["line_items"] == [{"price": "price_solo_yearly", "quantity": 1}]
    assert params["customer_email"] == clinic.owner.email
    assert params["metadata"]["billingCycle"] == "yearly"
    assert params["subscription_data"]["metadata"]["organizationId"] == str(clinic.organization.id)


async def test_checkout_without_price_is_400(db_session, clinic, solo_plan):
    with pytest.raises(HTTPException) as exc_info:
        await BillingService(db_session, RecordingStripe()).create_checkout_session(
            clinic.organization.id, solo_plan.id, BillingCycle.MONTHLY
        )

    assert exc_info.value.status_code == 400


async def test_portal_session_through_stripe(db_session, clinic):
    clinic.subscription.stripe_customer_id = "cus_test"
    await db_session.commit()
    stripe_gateway = RecordingStripe()

    response = await BillingService(db_session, stripe_gateway).create_portal_session(clinic.organization.id)

    assert response.portal_url == "https://billing.stripe.com/p/session/test"
    assert stripe_gateway.calls == [("portal", "cus_test")]


async def test_cancel_proceeds_when_stripe_fails(db_session, clinic):
    clinic.subscription.stripe_sub_id = "sub_cancel"
    await db_session.commit()
    stripe_gateway = RecordingStripe()

    response = await BillingService(db_session, stripe_gateway).cancel(clinic.organization.id, "Caro")

    assert response.status == SubscriptionStatus.CANCELED
    assert stripe_gateway.calls == [("cancel", "sub_cancel")]


async def test_portal_requires_stripe_customer(client, clinic, db_session):
    response = await client.post("/api/v1/billing/portal", headers=clinic.headers)
    assert response.status_code == 400

    clinic.subscription.stripe_customer_id = "cus_test"
    await db_session.commit()

    response = await client.post("/api/v1/billing/portal", headers=clinic.headers)
    assert response.status_code == 200
    assert response.json()["portalUrl"] == "/billing"


async def test_cancel_is_owner_only(client, clinic, make_user, add_member, headers_for, fetch):
    admin, _ = await make_user("admin@clinicaverde.com.br", name="Administradora")
    await add_member(admin, clinic.organization, MembershipRole.ADMIN)

    forbidden = await client.post(
        "/api/v1/billing/cancel", json={"reason": "Caro"}, headers=headers_for(admin, clinic.organization)
    )
    assert forbidden.status_code == 403

    response = await client.post("/api/v1/billing/cancel", json={"reason": "Caro"}, headers=clinic.headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"
    assert response.json()["cancelReason"] == "Caro"

    subscription = await fetch(Subscription, clinic.subscription.id)
    assert subscription.canceled_at is not None


# ============================================================================
# Webhooks
# ============================================================================


def _checkout_session(organization_id: Any, plan_id: Any, **metadata: Any) -> dict[str, Any]:
    return {
        "id": "cs_test_123",
        "customer": "cus_123",
        "subscription": {"id": "sub_123"},
        "metadata": {
            "organizationId": str(organization_id),
            "planId": str(plan_id),
            "billingCycle": "yearly",
            **metadata,
        },
    }


async def test_checkout_completed_activates_subscription(client, make_clinic, solo_plan, fetch, webhook_secret):
    clinic = await make_clinic(subscription_status=SubscriptionStatus.TRIAL)

    response = await _deliver(
        client, "checkout.session.completed", _checkout_session(clinic.organization.id, solo_plan.id)
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    subscription = await fetch(Subscription, clinic.subscription.id)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.billing_cycle == BillingCycle.YEARLY
    assert subscription.stripe_customer_id == "cus_123"
    assert subscription.stripe_sub_id == "sub_123"
    assert subscription.trial_ends_at is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"organizationId": "not-a-uuid"},
        {"planId": "not-a-uuid"},
        {"billingCycle": "weekly"},
        {"planId": "00000000-0000-4000-8000-000000000000"},
        {"organizationId": "00000000-0000-4000-8000-000000000000"},
    ],
)
async def test_checkout_with_bad_metadata_is_400(client, clinic, solo_plan, fetch, webhook_secret, overrides):
    session = _checkout_session(clinic.organization.id, solo_plan.id)
    session["metadata"].update(overrides)

    response = await _deliver(client, "checkout.session.completed", session)

    assert response.status_code == 400
    assert response.json()["message"].startswith("Metadata invalida no evento")
    assert (await fetch(Subscription, clinic.subscription.id)).stripe_sub_id is None


async def test_invoice_events_toggle_past_due(client, clinic, db_session, fetch, webhook_secret):
    clinic.subscription.stripe_sub_id = "sub_456"
    await db_session.commit()

    await _deliver(client, "invoice.payment_failed", {"subscription": "sub_456"})
    assert (await fetch(Subscription, clinic.subscription.id)).status == SubscriptionStatus.PAST_DUE

    await _deliver(client, "invoice.payment_succeeded", {"subscription": "sub_456"})
    assert (await fetch(Subscription, clinic.subscription.id)).status == SubscriptionStatus.ACTIVE


async def test_subscription_updated_and_deleted(client, clinic, db_session, fetch, webhook_secret):
    clinic.subscription.stripe_sub_id = "sub_789"
    await db_session.commit()

    await _deliver(
        client,
        "customer.subscription.updated",
        {
            "id": "sub_789",
            "customer": "cus_789",
            "status": "past_due",
            "current_period_start": 1_767_225_600,
            "current_period_end": 1_769_904_000,
        },
    )
    updated = await fetch(Subscription, clinic.subscription.id)
    assert updated.status == SubscriptionStatus.PAST_DUE
    assert updated.current_period_end == datetime.fromtimestamp(1_769_904_000, tz=timezone.utc)

    await _deliver(client, "customer.subscription.deleted", {"id": "sub_789"})
    deleted = await fetch(Subscription, clinic.subscription.id)
    assert deleted.status == SubscriptionStatus.CANCELED
    assert deleted.canceled_at is not None


async def test_unknown_event_is_acknowledged(client, webhook_secret):
    response = await _deliver(client, "customer.created", {"id": "cus_1"})

    assert response.status_code == 200


async def test_invalid_payload_is_400(client, webhook_secret):
    payload = b"not json"

    response = await client.post(
        "/api/v1/billing/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, int(time.time()))},
    )

    assert response.status_code == 400


@pytest.mark.security
async def test_webhook_ignored_without_secret(client, clinic, fetch):
    """Unsigned events cannot be trusted, so nothing changes without a secret."""
    payload = _event(
        "customer.subscription.updated",
        {"id": "sub_x", "status": "canceled", "metadata": {"organizationId": str(clinic.organization.id)}},
    )

    response = await client.post("/api/v1/billing/webhook", content=payload)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert (await fetch(Subscription, clinic.subscription.id)).status == SubscriptionStatus.ACTIVE


@pytest.mark.security
async def test_webhook_signature_enforced_with_secret(client, clinic, fetch, webhook_secret):
    payload = _event(
        "customer.subscription.updated",
        {"id": "sub_x", "status": "canceled", "metadata": {"organizationId": str(clinic.organization.id)}},
    )

    unsigned = await client.post("/api/v1/billing/webhook", content=payload)
    assert unsigned.status_code == 400

    forged = await client.post(
        "/api/v1/billing/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, int(time.time()), "whsec_attacker")},
    )
    assert forged.status_code == 400
    assert forged.json()["message"] == "Webhook signature verification failed"

    stale = await client.post(
        "/api/v1/billing/webhook",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, int(time.time()) - 3600)},
    )
    assert stale.status_code == 400
    assert (await fetch(Subscription, clinic.subscription.id)).status == SubscriptionStatus.ACTIVE

    signed = await _deliver(client, "customer.created", {"id": "cus_1"})
    assert signed.status_code == 200
