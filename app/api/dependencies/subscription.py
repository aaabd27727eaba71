"""Subscription gate - blocks writes for delinquent or canceled organizations."""

import logging
from datetime import timedelta

from fastapi import HTTPException, Request, status
from sqlalchemy import select

from app.api.dependencies.auth import DbSession
from app.api.dependencies.tenant import Tenant
from app.core.config import settings
from app.models.base import utcnow
from app.models.billing import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

READ_ONLY_METHODS = {"GET", "HEAD", "OPTIONS"}


async def require_subscription(request: Request, tenant: Tenant, db: DbSession) -> Subscription:
    """
    Enforce the organization's subscription state.

    - PAST_DUE: read-only
    - CANCELED: read-only for CANCELED_GRACE_DAYS after cancellation
    - TRIAL past its end: persisted as PAST_DUE, then read-only
    """
    subscription = await db.scalar(
        select(Subscription)
        .where(Subscription.organization_id == tenant.organization_id)
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )

    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organização sem assinatura ativa",
        )

    is_read_only = request.method in READ_ONLY_METHODS
    now = utcnow()

    if subscription.status == SubscriptionStatus.PAST_DUE:
        if is_read_only:
            request.state.read_only = True
            return subscription
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Assinatura vencida. Por favor, atualize seu pagamento para continuar.",
        )

    if subscription.status == SubscriptionStatus.CANCELED:
        canceled_at = subscription.canceled_at
        if (
            canceled_at is not None
            and now - canceled_at <= timedelta(days=settings.CANCELED_GRACE_DAYS)
            and is_read_only
        ):
            request.state.read_only = True
            return subscription
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Assinatura cancelada. Seus dados estarão disponíveis por 30 dias.",
        )

    if (
        subscription.status == SubscriptionStatus.TRIAL
        and subscription.trial_ends_at is not None
        and now > subscription.trial_ends_at
    ):
        subscription.status = SubscriptionStatus.PAST_DUE
        await db.commit()
        logger.info(f"Trial expired for organization {tenant.organization_id}")

        if is_read_only:
            request.state.read_only = True
            return subscription
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Período de trial expirado. Por favor, assine um plano para continuar.",
        )

    return subscription
