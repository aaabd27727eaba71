"""Doctor dashboard: independent read queries fanned out in parallel."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Select, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import (
    AnvisaReport,
    AnvisaReportStatus,
    Consultation,
    ConsultationStatus,
    Patient,
    Prescription,
    PrescriptionStatus,
)
from app.models.base import utcnow
from app.schemas.dashboard import (
    DailySummary,
    DashboardResponse,
    DashboardStats,
    RecentPatient,
    UpcomingConsultation,
    UpcomingPatient,
)
from app.utils.timezones import clinic_tz, day_bounds, local_today, month_bounds

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 5
RECENT_PATIENTS_LIMIT = 5
WEEKLY_SUMMARY_DAYS = 7


class DashboardService:
    """
    Aggregates for the calling doctor.

    Each query runs on its own session so they can be awaited together;
    one AsyncSession cannot serve concurrent statements.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _count(self, stmt: Select) -> int:
        async with self.session_factory() as session:
            return await session.scalar(stmt) or 0

    async def _all(self, stmt: Select) -> list[Any]:
        async with self.session_factory() as session:
            return list((await session.scalars(stmt)).unique())

    async def _rows(self, stmt: Select) -> list[Any]:
        async with self.session_factory() as session:
            return list(await session.execute(stmt))

    async def doctor_dashboard(self, organization_id: UUID, doctor_id: UUID) -> DashboardResponse:
        today = local_today()
        today_start, today_end = day_bounds(today)
        month_start, month_end = month_bounds(today)

        treated_by_doctor = exists().where(
            Consultation.patient_id == Patient.id,
            Consultation.doctor_id == doctor_id,
        )
        in_month = (
            Consultation.doctor_id == doctor_id,
            Consultation.scheduled_at >= month_start,
            Consultation.scheduled_at < month_end,
        )

        (
            total_patients,
            consultations_today,
            consultations_this_month,
            completed_this_month,
            total_reports,
            pending_reports,
            total_prescriptions,
            active_prescriptions,
            upcoming,
            recent_patients,
            by_status,
        ) = await asyncio.gather(
            self._count(
                select(func.count(Patient.id)).where(
                    Patient.organization_id == organization_id, treated_by_doctor
                )
            ),
            self._count(
                select(func.count(Consultation.id)).where(
                    Consultation.doctor_id == doctor_id,
                    Consultation.scheduled_at >= today_start,
                    Consultation.scheduled_at < today_end,
                )
            ),
            self._count(select(func.count(Consultation.id)).where(*in_month)),
            self._count(
                select(func.count(Consultation.id)).where(
                    *in_month, Consultation.status == ConsultationStatus.COMPLETED
                )
            ),
            self._count(select(func.count(AnvisaReport.id)).where(AnvisaReport.doctor_id == doctor_id)),
            self._count(
                select(func.count(AnvisaReport.id)).where(
                    AnvisaReport.doctor_id == doctor_id,
                    AnvisaReport.status.in_(
                        (AnvisaReportStatus.DRAFT, AnvisaReportStatus.PENDING_SIGNATURE)
                    ),
                )
            ),
            self._count(select(func.count(Prescription.id)).where(Prescription.doctor_id == doctor_id)),
            self._count(
                select(func.count(Prescription.id)).where(
                    Prescription.doctor_id == doctor_id,
                    Prescription.status == PrescriptionStatus.SIGNED,
                    Prescription.valid_until >= today,
                )
            ),
            self._all(
                select(Consultation)
                .where(
                    Consultation.doctor_id == doctor_id,
                    Consultation.status.in_((ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED)),
                    Consultation.scheduled_at >= today_start,
                )
                .order_by(Consultation.scheduled_at.asc())
                .limit(UPCOMING_LIMIT)
            ),
            self._all(
                select(Patient)
                .where(Patient.organization_id == organization_id, treated_by_doctor)
                .order_by(Patient.created_at.desc())
                .limit(RECENT_PATIENTS_LIMIT)
            ),
            self._rows(
                select(Consultation.status, func.count(Consultation.id))
                .where(*in_month)
                .group_by(Consultation.status)
            ),
        )

        return DashboardResponse(
            stats=DashboardStats(
                total_patients=total_patients,
                consultations_today=consultations_today,
                consultations_this_month=consultations_this_month,
                completed_consultations_this_month=completed_this_month,
                total_reports=total_reports,
                pending_reports=pending_reports,
                total_prescriptions=total_prescriptions,
                active_prescriptions=active_prescriptions,
            ),
            upcoming_consultations=[
                UpcomingConsultation(
                    id=c.id,
                    type=c.type,
                    status=c.status,
                    scheduled_at=c.scheduled_at,
                    duration=c.duration,
                    patient=UpcomingPatient.model_validate(c.patient),
                )
                for c in upcoming
            ],
            recent_patients=[RecentPatient.model_validate(p) for p in recent_patients],
            consultations_by_status={row[0].value: row[1] for row in by_status},
        )

    async def weekly_summary(self, doctor_id: UUID, now: Optional[datetime] = None) -> list[DailySummary]:
        """Consultations created per local day over the last week, oldest first."""
        now = now or utcnow()
        today = local_today(now)
        days = [today - timedelta(days=offset) for offset in range(WEEKLY_SUMMARY_DAYS - 1, -1, -1)]
        start, _ = day_bounds(days[0])

        rows = await self._rows(
            select(Consultation.status, Consultation.created_at).where(
                Consultation.doctor_id == doctor_id,
                Consultation.created_at >= start,
                Consultation.created_at <= now,
            )
        )

        summary = {day: DailySummary(date=day, total=0, completed=0) for day in days}
        tz = clinic_tz()
        for consultation_status, created_at in rows:
            entry = summary.get(created_at.astimezone(tz).date())
            if entry is None:
                continue
            entry.total += 1
            if consultation_status == ConsultationStatus.COMPLETED:
                entry.completed += 1

        return list(summary.values())
