"""ARQ task definitions for background processing."""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update

from app.core.database import get_db_session
from app.models.base import utcnow
from app.models.billing import Subscription, SubscriptionStatus
from app.models.consultation import Consultation, ConsultationStatus
from app.models.prescription import Prescription, PrescriptionStatus
from app.services.email import EmailService, consultation_reminder_email, get_email_service
from app.utils.timezones import local_today

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED)


def _email_service(ctx: dict[str, Any]) -> EmailService:
    return ctx.get("email") or get_email_service()


async def send_email_job(ctx: dict[str, Any], template: str, to: str, context: dict[str, Any]) -> bool:
    """
    Render and deliver a templated email.

    Raises:
        RuntimeError: When the provider rejects the message, so ARQ retries it
    """
    sent = await _email_service(ctx).send_template(template, to, context)
    if not sent:
        raise RuntimeError(f"Email {template} to {to} was not delivered")
    logger.info(f"Email {template} delivered (job {ctx.get('job_id')})")
    return True


async def send_consultation_reminder(
    ctx: dict[str, Any], consultation_id: str, scheduled_for: Optional[str] = None
) -> Optional[str]:
    """
    Remind the patient of a consultation 24 hours ahead.

    Skipped when the consultation was canceled, already happened, moved away
    from `scheduled_for` or the patient has no email.
    """
    async with get_db_session(ctx.get("session_factory")) as session:
        consultation = await session.get(Consultation, UUID(consultation_id))

        if consultation is None:
            logger.warning(f"Reminder skipped: consultation {consultation_id} not found")
            return None
        if consultation.status not in REMINDABLE_STATUSES:
            logger.info(f"Reminder skipped: consultation {consultation_id} is {consultation.status.value}")
            return None
        if scheduled_for and consultation.scheduled_at != datetime.fromisoformat(scheduled_for):
            logger.info(f"Reminder skipped: consultation {consultation_id} was rescheduled")
            return None
        if not consultation.patient.email:
            logger.info(f"Reminder skipped: patient of consultation {consultation_id} has no email")
            return None

        message = consultation_reminder_email(
            patient_name=consultation.patient.name,
            doctor_name=consultation.doctor.user.name,
            scheduled_at=consultation.scheduled_at,
            consultation_id=consultation_id,
        )
        recipient = consultation.patient.email

    if not await _email_service(ctx).send_message(recipient, message):
        raise RuntimeError(f"Reminder for consultation {consultation_id} was not delivered")
    return consultation_id


async def expire_prescriptions(ctx: dict[str, Any]) -> int:
    """Move SIGNED prescriptions past valid_until to EXPIRED."""
    async with get_db_session(ctx.get("session_factory")) as session:
        result = await session.execute(
            update(Prescription)
            .where(
                Prescription.status == PrescriptionStatus.SIGNED,
                Prescription.valid_until < local_today(),
            )
            .values(status=PrescriptionStatus.EXPIRED, updated_at=utcnow())
        )
        await session.commit()

    expired = result.rowcount or 0
    if expired:
        logger.info(f"Expired {expired} prescriptions")
    return expired


async def expire_trials(ctx: dict[str, Any]) -> int:
    """Move TRIAL subscriptions past trial_ends_at to PAST_DUE."""
    async with get_db_session(ctx.get("session_factory")) as session:
        result = await session.execute(
            update(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.TRIAL,
                Subscription.trial_ends_at < utcnow(),
            )
            .values(status=SubscriptionStatus.PAST_DUE, updated_at=utcnow())
        )
        await session.commit()

    expired = result.rowcount or 0
    if expired:
        logger.info(f"Moved {expired} expired trials to PAST_DUE")
    return expired
