"""Billing models - Plans and organization subscriptions."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, JSONType, OrganizationMixin, UTCDateTime, enum_column


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class BillingCycle(str, Enum):
    """Billing period."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class Plan(BaseModel):
    """
    Plan model.

    Limits of -1 mean unlimited.
    """

    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Plan code (SOLO, TEAM, CLINIC)",
    )

    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Human readable plan name",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Plan description",
    )

    price_monthly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Monthly price (BRL)",
    )

    price_yearly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Yearly price (BRL)",
    )

    max_doctors: Mapped[int] = mapped_column(nullable=False, default=1)
    max_patients: Mapped[int] = mapped_column(nullable=False, default=100)
    max_consultations: Mapped[int] = mapped_column(nullable=False, default=-1)

    features: Mapped[list[Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Marketing feature list",
    )

    stripe_price_id_monthly: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stripe_price_id_yearly: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(default=0, nullable=False)


class Subscription(BaseModel, OrganizationMixin):
    """
    Subscription model.

    The most recent subscription of an organization is the effective one.
    """

    __tablename__ = "subscriptions"

    plan_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Subscribed plan",
    )

    status: Mapped[SubscriptionStatus] = mapped_column(
        enum_column(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.TRIAL,
        comment="Lifecycle status",
    )

    billing_cycle: Mapped[BillingCycle] = mapped_column(
        enum_column(BillingCycle, "billing_cycle"),
        nullable=False,
        default=BillingCycle.MONTHLY,
        comment="monthly or yearly",
    )

    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    current_period_start: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Stripe customer (cus_...)",
    )

    stripe_sub_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Stripe subscription (sub_...)",
    )

    plan: Mapped[Plan] = relationship(lazy="joined")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Subscription org={self.organization_id} status={self.status.value}>"
