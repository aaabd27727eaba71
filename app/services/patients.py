"""Patient registry service with encrypted CPF storage."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import cpf_last_four, decrypt_cpf, encrypt_cpf, hash_cpf, normalize_cpf
from app.models import Consultation, Patient, PatientDocument, PipelineStatus
from app.schemas.patient import (
    PatientConsultationSummary,
    PatientCreate,
    PatientDetailResponse,
    PatientDocumentResponse,
    PatientListResponse,
    PatientResponse,
    PatientUpdate,
    PipelineCount,
)

logger = logging.getLogger(__name__)

RECENT_CONSULTATIONS_LIMIT = 10


async def set_pipeline_status(db: AsyncSession, patient_id: UUID, pipeline_status: PipelineStatus) -> None:
    """Move a patient along the treatment pipeline (no commit)."""
    patient = await db.get(Patient, patient_id)
    if patient is not None:
        patient.pipeline_status = pipeline_status


class PatientService:
    """Organization-scoped patient operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_patient(self, organization_id: UUID, patient_id: UUID) -> Patient:
        """
        Load a patient of the organization.

        Raises:
            HTTPException: 404 if absent, 403 if it belongs to another organization
        """
        patient = await self.db.get(Patient, patient_id)
        if patient is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente não encontrado")
        if patient.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")
        return patient

    async def create(
        self, organization_id: UUID, created_by: UUID, data: PatientCreate
    ) -> PatientResponse:
        """
        Register a patient in the LEAD stage.

        Raises:
            HTTPException: 409 if the CPF is already registered in the organization
        """
        cpf_hash = hash_cpf(data.cpf)
        duplicate = await self.db.scalar(
            select(Patient.id).where(
                Patient.organization_id == organization_id,
                Patient.cpf_hash == cpf_hash,
            )
        )
        if duplicate is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Paciente com este CPF já cadastrado",
            )

        payload = data.model_dump(exclude={"cpf", "address"})
        patient = Patient(
            **payload,
            organization_id=organization_id,
            cpf_encrypted=encrypt_cpf(data.cpf),
            cpf_hash=cpf_hash,
            cpf_last_four=cpf_last_four(data.cpf),
            address=data.address.model_dump(by_alias=True, exclude_none=True) if data.address else None,
            pipeline_status=PipelineStatus.LEAD,
            created_by=created_by,
        )
        self.db.add(patient)
        await self.db.commit()

        logger.info(f"Patient {patient.id} created in organization {organization_id}")
        return PatientResponse.model_validate(patient)

    async def list_patients(
        self,
        organization_id: UUID,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        pipeline_status: Optional[PipelineStatus] = None,
    ) -> PatientListResponse:
        """Newest first, filtered by name / email / CPF last four and pipeline stage."""
        conditions = [Patient.organization_id == organization_id]

        if search:
            term = f"%{search}%"
            search_conditions = [Patient.name.ilike(term), Patient.email.ilike(term)]
            digits = normalize_cpf(search)
            if digits:
                search_conditions.append(Patient.cpf_last_four == digits[-4:])
            conditions.append(or_(*search_conditions))

        if pipeline_status is not None:
            conditions.append(Patient.pipeline_status == pipeline_status)

        total = await self.db.scalar(select(func.count(Patient.id)).where(*conditions)) or 0
        patients = await self.db.scalars(
            select(Patient)
            .where(*conditions)
            .order_by(Patient.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return PatientListResponse(
            patients=[PatientResponse.model_validate(p) for p in patients],
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit,
        )

    async def pipeline_summary(self, organization_id: UUID) -> list[PipelineCount]:
        """Patient count for every pipeline stage, zero included."""
        rows = await self.db.execute(
            select(Patient.pipeline_status, func.count(Patient.id))
            .where(Patient.organization_id == organization_id)
            .group_by(Patient.pipeline_status)
        )
        counts = {row[0]: row[1] for row in rows}
        return [PipelineCount(status=stage, count=counts.get(stage, 0)) for stage in PipelineStatus]

    async def detail(self, organization_id: UUID, patient_id: UUID) -> PatientDetailResponse:
        """Patient with decrypted CPF, last consultations and documents."""
        patient = await self.get_patient(organization_id, patient_id)

        consultations = await self.db.scalars(
            select(Consultation)
            .where(Consultation.patient_id == patient.id)
            .order_by(Consultation.scheduled_at.desc())
            .limit(RECENT_CONSULTATIONS_LIMIT)
        )
        documents = await self.db.scalars(
            select(PatientDocument)
            .where(PatientDocument.patient_id == patient.id)
            .order_by(PatientDocument.uploaded_at.desc())
        )

        response = PatientDetailResponse.model_validate(
            {
                **PatientResponse.model_validate(patient).model_dump(),
                "cpf": decrypt_cpf(patient.cpf_encrypted),
            }
        )
        response.consultations = [
            PatientConsultationSummary(
                id=c.id,
                type=c.type,
                status=c.status,
                scheduled_at=c.scheduled_at,
                duration=c.duration,
                doctor_name=c.doctor.user.name,
            )
            for c in consultations
        ]
        response.documents = [PatientDocumentResponse.model_validate(d) for d in documents]
        return response

    async def find_by_cpf(self, organization_id: UUID, cpf: str) -> PatientDetailResponse:
        """
        Look a patient up by CPF inside the organization.

        Raises:
            HTTPException: 404 if no patient has this CPF
        """
        patient_id = await self.db.scalar(
            select(Patient.id).where(
                Patient.organization_id == organization_id,
                Patient.cpf_hash == hash_cpf(cpf),
            )
        )
        if patient_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente não encontrado")
        return await self.detail(organization_id, patient_id)

    async def update(
        self, organization_id: UUID, patient_id: UUID, data: PatientUpdate
    ) -> PatientResponse:
        patient = await self.get_patient(organization_id, patient_id)

        changes = data.model_dump(exclude_unset=True, exclude={"address"})
        for field, value in changes.items():
            setattr(patient, field, value)
        if "address" in data.model_fields_set:
            patient.address = (
                data.address.model_dump(by_alias=True, exclude_none=True) if data.address else None
            )

        await self.db.commit()
        return PatientResponse.model_validate(patient)

    async def update_pipeline_status(
        self, organization_id: UUID, patient_id: UUID, pipeline_status: PipelineStatus
    ) -> PatientResponse:
        patient = await self.get_patient(organization_id, patient_id)
        patient.pipeline_status = pipeline_status
        await self.db.commit()

        logger.info(f"Patient {patient.id} moved to {pipeline_status.value}")
        return PatientResponse.model_validate(patient)
