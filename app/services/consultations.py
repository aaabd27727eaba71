"""Consultation scheduling and lifecycle service."""

import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    Consultation,
    ConsultationStatus,
    DoctorProfile,
    Patient,
    PipelineStatus,
)
from app.models.base import utcnow
from app.models.consultation import ACTIVE_CONSULTATION_STATUSES
from app.schemas.consultation import (
    ConsultationCreate,
    ConsultationListResponse,
    ConsultationResponse,
    ConsultationUpdate,
)
from app.services.patients import set_pipeline_status
from app.services.task_queue import TaskQueueService, get_task_queue_service
from app.utils.timezones import day_bounds, local_today

logger = logging.getLogger(__name__)

REMINDER_LEAD_TIME = timedelta(hours=24)
UPCOMING_LIMIT = 10

VALID_TRANSITIONS: dict[ConsultationStatus, frozenset[ConsultationStatus]] = {
    ConsultationStatus.SCHEDULED: frozenset(
        {ConsultationStatus.CONFIRMED, ConsultationStatus.CANCELED, ConsultationStatus.NO_SHOW}
    ),
    ConsultationStatus.CONFIRMED: frozenset(
        {
            ConsultationStatus.WAITING,
            ConsultationStatus.IN_PROGRESS,
            ConsultationStatus.CANCELED,
            ConsultationStatus.NO_SHOW,
        }
    ),
    ConsultationStatus.WAITING: frozenset(
        {ConsultationStatus.IN_PROGRESS, ConsultationStatus.CANCELED, ConsultationStatus.NO_SHOW}
    ),
    ConsultationStatus.IN_PROGRESS: frozenset({ConsultationStatus.COMPLETED}),
    ConsultationStatus.COMPLETED: frozenset(),
    ConsultationStatus.CANCELED: frozenset(),
    ConsultationStatus.NO_SHOW: frozenset(),
}

TODAY_STATUSES = (
    ConsultationStatus.SCHEDULED,
    ConsultationStatus.CONFIRMED,
    ConsultationStatus.WAITING,
    ConsultationStatus.IN_PROGRESS,
)

_ROOM_ALPHABET = string.ascii_lowercase + string.digits


def generate_room_name() -> str:
    """canneo-{epoch ms}-{random suffix}."""
    suffix = "".join(secrets.choice(_ROOM_ALPHABET) for _ in range(6))
    return f"canneo-{int(time.time() * 1000)}-{suffix}"


def validate_transition(current: ConsultationStatus, new: ConsultationStatus) -> None:
    """
    Raises:
        HTTPException: 400 if `current` cannot move to `new`
    """
    if new not in VALID_TRANSITIONS[current]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Transicao de status invalida: {current.value} -> {new.value}",
        )


class ConsultationService:
    """Organization-scoped consultation operations."""

    def __init__(self, db: AsyncSession, task_queue: Optional[TaskQueueService] = None) -> None:
        self.db = db
        self.task_queue = task_queue or get_task_queue_service()

    async def get_consultation(self, organization_id: UUID, consultation_id: UUID) -> Consultation:
        """
        Raises:
            HTTPException: 404 unless the consultation belongs to the organization
        """
        consultation = await self.db.scalar(
            select(Consultation).where(
                Consultation.id == consultation_id,
                Consultation.organization_id == organization_id,
            )
        )
        if consultation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consulta nao encontrada")
        return consultation

    async def _find_conflict(
        self,
        doctor_id: UUID,
        scheduled_at: datetime,
        duration: int,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[UUID]:
        window = timedelta(minutes=duration)
        stmt = select(Consultation.id).where(
            Consultation.doctor_id == doctor_id,
            Consultation.status.in_(ACTIVE_CONSULTATION_STATUSES),
            Consultation.scheduled_at >= scheduled_at - window,
            Consultation.scheduled_at <= scheduled_at + window,
        )
        if exclude_id is not None:
            stmt = stmt.where(Consultation.id != exclude_id)
        return await self.db.scalar(stmt.limit(1))

    async def _schedule_reminder(self, consultation: Consultation) -> None:
        remind_at = consultation.scheduled_at - REMINDER_LEAD_TIME
        if remind_at <= utcnow():
            return
        await self.task_queue.schedule_consultation_reminder(
            str(consultation.id), consultation.scheduled_at, remind_at
        )

    async def create(self, organization_id: UUID, data: ConsultationCreate) -> ConsultationResponse:
        """
        Book a consultation.

        Raises:
            HTTPException: 404 for unknown patient or doctor, 400 if the slot is taken
        """
        patient = await self.db.scalar(
            select(Patient).where(Patient.id == data.patient_id, Patient.organization_id == organization_id)
        )
        if patient is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente nao encontrado")

        doctor = await self.db.get(DoctorProfile, data.doctor_id)
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medico nao encontrado")

        if await self._find_conflict(doctor.id, data.scheduled_at, data.duration):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Horario ja ocupado")

        consultation = Consultation(
            organization_id=organization_id,
            patient_id=patient.id,
            doctor_id=doctor.id,
            type=data.type,
            scheduled_at=data.scheduled_at,
            duration=data.duration,
            notes=data.notes,
            room_name=generate_room_name(),
            status=ConsultationStatus.SCHEDULED,
        )
        consultation.patient = patient
        consultation.doctor = doctor
        self.db.add(consultation)
        patient.pipeline_status = PipelineStatus.CONSULTA_AGENDADA
        await self.db.commit()

        logger.info(f"Consultation {consultation.id} scheduled for {consultation.scheduled_at.isoformat()}")

        await self._schedule_reminder(consultation)
        return ConsultationResponse.model_validate(consultation)

    async def list_consultations(
        self,
        organization_id: UUID,
        status_filter: Optional[ConsultationStatus] = None,
        doctor_id: Optional[UUID] = None,
        patient_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> ConsultationListResponse:
        """Filtered consultations in chronological order."""
        conditions = [Consultation.organization_id == organization_id]
        if status_filter is not None:
            conditions.append(Consultation.status == status_filter)
        if doctor_id is not None:
            conditions.append(Consultation.doctor_id == doctor_id)
        if patient_id is not None:
            conditions.append(Consultation.patient_id == patient_id)
        if start_date is not None:
            conditions.append(Consultation.scheduled_at >= start_date)
        if end_date is not None:
            conditions.append(Consultation.scheduled_at <= end_date)

        total = await self.db.scalar(select(func.count(Consultation.id)).where(*conditions)) or 0
        consultations = await self.db.scalars(
            select(Consultation)
            .where(*conditions)
            .order_by(Consultation.scheduled_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return ConsultationListResponse(
            consultations=[ConsultationResponse.model_validate(c) for c in consultations],
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit,
        )

    async def today(
        self, organization_id: UUID, doctor_id: Optional[UUID] = None
    ) -> list[ConsultationResponse]:
        """Open consultations of the current clinic day."""
        start, end = day_bounds(local_today())
        stmt = select(Consultation).where(
            Consultation.organization_id == organization_id,
            Consultation.scheduled_at >= start,
            Consultation.scheduled_at < end,
            Consultation.status.in_(TODAY_STATUSES),
        )
        if doctor_id is not None:
            stmt = stmt.where(Consultation.doctor_id == doctor_id)

        consultations = await self.db.scalars(stmt.order_by(Consultation.scheduled_at.asc()))
        return [ConsultationResponse.model_validate(c) for c in consultations]

    async def upcoming(
        self,
        organization_id: UUID,
        doctor_id: Optional[UUID] = None,
        limit: int = UPCOMING_LIMIT,
    ) -> list[ConsultationResponse]:
        """Next scheduled or confirmed consultations."""
        stmt = select(Consultation).where(
            Consultation.organization_id == organization_id,
            Consultation.scheduled_at >= utcnow(),
            Consultation.status.in_((ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED)),
        )
        if doctor_id is not None:
            stmt = stmt.where(Consultation.doctor_id == doctor_id)

        consultations = await self.db.scalars(stmt.order_by(Consultation.scheduled_at.asc()).limit(limit))
        return [ConsultationResponse.model_validate(c) for c in consultations]

    async def update(
        self, organization_id: UUID, consultation_id: UUID, data: ConsultationUpdate
    ) -> ConsultationResponse:
        """
        Reschedule, annotate or move a consultation along its status table.

        Raises:
            HTTPException: 400 on invalid transition or conflicting new time
        """
        consultation = await self.get_consultation(organization_id, consultation_id)
        changes = data.model_dump(exclude_unset=True)

        new_status = changes.pop("status", None)
        if new_status is not None and new_status != consultation.status:
            validate_transition(consultation.status, new_status)
            consultation.status = new_status
            if new_status == ConsultationStatus.CANCELED:
                consultation.canceled_at = utcnow()

        rescheduled = "scheduled_at" in changes or "duration" in changes
        if rescheduled:
            scheduled_at = changes.get("scheduled_at", consultation.scheduled_at)
            duration = changes.get("duration", consultation.duration)
            if await self._find_conflict(consultation.doctor_id, scheduled_at, duration, consultation.id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Horario ja ocupado")

        for field, value in changes.items():
            setattr(consultation, field, value)

        await self.db.commit()

        if "scheduled_at" in changes and consultation.status in ACTIVE_CONSULTATION_STATUSES:
            await self._schedule_reminder(consultation)
        return ConsultationResponse.model_validate(consultation)

    async def confirm(self, organization_id: UUID, consultation_id: UUID) -> ConsultationResponse:
        consultation = await self.get_consultation(organization_id, consultation_id)
        if consultation.status != ConsultationStatus.SCHEDULED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Apenas consultas agendadas podem ser confirmadas",
            )

        consultation.status = ConsultationStatus.CONFIRMED
        await self.db.commit()
        return ConsultationResponse.model_validate(consultation)

    async def cancel(
        self, organization_id: UUID, consultation_id: UUID, reason: Optional[str] = None
    ) -> ConsultationResponse:
        consultation = await self.get_consultation(organization_id, consultation_id)
        if consultation.status in (ConsultationStatus.COMPLETED, ConsultationStatus.CANCELED):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Consulta ja finalizada ou cancelada",
            )

        consultation.status = ConsultationStatus.CANCELED
        consultation.cancel_reason = reason
        consultation.canceled_at = utcnow()
        await self.db.commit()

        logger.info(f"Consultation {consultation.id} canceled")
        return ConsultationResponse.model_validate(consultation)

    async def start(
        self, organization_id: UUID, consultation_id: UUID, user_id: UUID
    ) -> ConsultationResponse:
        """
        Raises:
            HTTPException: 403 unless the caller is the assigned doctor
        """
        consultation = await self.get_consultation(organization_id, consultation_id)
        if consultation.doctor.user_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico pode iniciar a consulta",
            )
        if consultation.status not in (
            ConsultationStatus.SCHEDULED,
            ConsultationStatus.CONFIRMED,
            ConsultationStatus.WAITING,
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Consulta nao pode ser iniciada neste status",
            )

        consultation.status = ConsultationStatus.IN_PROGRESS
        consultation.started_at = utcnow()
        await set_pipeline_status(self.db, consultation.patient_id, PipelineStatus.EM_CONSULTA)
        await self.db.commit()
        return ConsultationResponse.model_validate(consultation)

    async def end(
        self, organization_id: UUID, consultation_id: UUID, user_id: UUID
    ) -> ConsultationResponse:
        """
        Raises:
            HTTPException: 403 unless the caller is the assigned doctor
        """
        consultation = await self.get_consultation(organization_id, consultation_id)
        if consultation.doctor.user_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico pode finalizar a consulta",
            )
        if consultation.status != ConsultationStatus.IN_PROGRESS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Consulta nao esta em andamento",
            )

        consultation.status = ConsultationStatus.COMPLETED
        consultation.ended_at = utcnow()
        await set_pipeline_status(self.db, consultation.patient_id, PipelineStatus.PRESCRICAO_EMITIDA)
        await self.db.commit()
        return ConsultationResponse.model_validate(consultation)

    async def mark_no_show(self, organization_id: UUID, consultation_id: UUID) -> ConsultationResponse:
        consultation = await self.get_consultation(organization_id, consultation_id)
        if consultation.status not in (ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Apenas consultas agendadas podem ser marcadas como no-show",
            )

        consultation.status = ConsultationStatus.NO_SHOW
        await self.db.commit()
        return ConsultationResponse.model_validate(consultation)
