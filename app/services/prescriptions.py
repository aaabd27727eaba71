"""Prescriptions and the cannabis product catalog."""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decrypt_cpf, generate_signature_hash, iso_timestamp
from app.models import (
    AuditAction,
    CannabisProduct,
    DoctorProfile,
    MedicalRecord,
    Patient,
    Prescription,
    PrescriptionStatus,
)
from app.models.base import utcnow
from app.schemas.prescription import (
    CannabisProductResponse,
    PrescriptionCreate,
    PrescriptionDetailResponse,
    PrescriptionDoctor,
    PrescriptionDoctorUser,
    PrescriptionListResponse,
    PrescriptionPatient,
    PrescriptionResponse,
    PrescriptionUpdate,
)
from app.services.audit import record_audit
from app.services.task_queue import TaskQueueService, get_task_queue_service

logger = logging.getLogger(__name__)

LOCKED_STATUSES = (PrescriptionStatus.SIGNED, PrescriptionStatus.REVOKED)


def prescription_signature_payload(prescription: Prescription, doctor: DoctorProfile) -> dict[str, Any]:
    return {
        "prescriptionId": str(prescription.id),
        "patientId": str(prescription.patient_id),
        "doctorId": str(prescription.doctor_id),
        "crm": doctor.crm,
        "uf": doctor.uf_crm,
        "productName": prescription.product_name,
        "dosage": prescription.dosage,
        "quantity": prescription.quantity,
        "validUntil": prescription.valid_until.isoformat(),
    }


def _detail(prescription: Prescription, with_cpf: bool = False) -> PrescriptionDetailResponse:
    patient = prescription.patient
    doctor = prescription.doctor
    return PrescriptionDetailResponse(
        **PrescriptionResponse.model_validate(prescription).model_dump(),
        patient=PrescriptionPatient(
            id=patient.id,
            name=patient.name,
            birth_date=patient.birth_date,
            cpf=decrypt_cpf(patient.cpf_encrypted) if with_cpf else None,
        ),
        doctor=PrescriptionDoctor(
            id=doctor.id,
            crm=doctor.crm,
            uf_crm=doctor.uf_crm,
            specialty=doctor.specialty,
            user=PrescriptionDoctorUser(name=doctor.user.name, email=doctor.user.email),
        ),
    )


class PrescriptionService:
    """Organization-scoped prescription operations."""

    def __init__(self, db: AsyncSession, task_queue: Optional[TaskQueueService] = None) -> None:
        self.db = db
        self.task_queue = task_queue or get_task_queue_service()

    async def get_prescription(self, organization_id: UUID, prescription_id: UUID) -> Prescription:
        """
        Raises:
            HTTPException: 404 if absent, 403 if it belongs to another organization
        """
        prescription = await self.db.get(Prescription, prescription_id)
        if prescription is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescricao nao encontrada")
        if prescription.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")
        return prescription

    def _check_author(self, prescription: Prescription, doctor: Optional[DoctorProfile], verb: str) -> DoctorProfile:
        if doctor is None or prescription.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Apenas o medico responsavel pode {verb} a prescricao",
            )
        return doctor

    async def _ensure_product(self, product_id: UUID) -> None:
        if await self.db.get(CannabisProduct, product_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Produto nao encontrado")

    async def create(
        self, organization_id: UUID, doctor: DoctorProfile, data: PrescriptionCreate
    ) -> PrescriptionResponse:
        """
        Draft a prescription from a medical record of the calling doctor.

        Raises:
            HTTPException: 404 unknown record or product, 403 not the record's doctor
        """
        record = await self.db.get(MedicalRecord, data.medical_record_id)
        if record is None or record.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prontuario nao encontrado")

        if record.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico do prontuario pode criar prescricoes",
            )

        if data.product_id is not None:
            await self._ensure_product(data.product_id)

        prescription = Prescription(
            **data.model_dump(),
            organization_id=organization_id,
            patient_id=record.patient_id,
            doctor_id=doctor.id,
            status=PrescriptionStatus.DRAFT,
        )
        self.db.add(prescription)
        await self.db.commit()
        await self.db.refresh(prescription, ["product"])

        logger.info(f"Prescription {prescription.id} drafted from record {record.id}")
        return PrescriptionResponse.model_validate(prescription)

    async def list_prescriptions(
        self,
        organization_id: UUID,
        patient_id: Optional[UUID] = None,
        prescription_status: Optional[PrescriptionStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> PrescriptionListResponse:
        """Newest first, optionally for one patient of the organization."""
        conditions = [Prescription.organization_id == organization_id]

        if patient_id is not None:
            patient = await self.db.get(Patient, patient_id)
            if patient is None or patient.organization_id != organization_id:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente nao encontrado")
            conditions.append(Prescription.patient_id == patient_id)

        if prescription_status is not None:
            conditions.append(Prescription.status == prescription_status)

        total = await self.db.scalar(select(func.count(Prescription.id)).where(*conditions)) or 0
        prescriptions = await self.db.scalars(
            select(Prescription)
            .where(*conditions)
            .order_by(Prescription.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return PrescriptionListResponse(
            prescriptions=[_detail(p) for p in prescriptions],
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit,
        )

    async def detail(self, organization_id: UUID, prescription_id: UUID) -> PrescriptionDetailResponse:
        prescription = await self.get_prescription(organization_id, prescription_id)
        return _detail(prescription, with_cpf=True)

    async def update(
        self,
        organization_id: UUID,
        prescription_id: UUID,
        doctor: Optional[DoctorProfile],
        data: PrescriptionUpdate,
    ) -> PrescriptionResponse:
        prescription = await self.get_prescription(organization_id, prescription_id)
        self._check_author(prescription, doctor, "editar")

        if prescription.status in LOCKED_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Prescricao assinada ou revogada nao pode ser editada",
            )

        changes = data.model_dump(exclude_unset=True)
        if changes.get("product_id") is not None:
            await self._ensure_product(changes["product_id"])

        for field, value in changes.items():
            setattr(prescription, field, value)

        await self.db.commit()
        await self.db.refresh(prescription, ["product"])
        return PrescriptionResponse.model_validate(prescription)

    async def sign(
        self,
        organization_id: UUID,
        prescription_id: UUID,
        doctor: Optional[DoctorProfile],
        ip_address: str,
    ) -> PrescriptionResponse:
        """
        Sign a DRAFT prescription and notify the patient by email.

        Raises:
            HTTPException: 403 not the author, 400 when not a draft
        """
        prescription = await self.get_prescription(organization_id, prescription_id)
        doctor = self._check_author(prescription, doctor, "assinar")

        if prescription.status != PrescriptionStatus.DRAFT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Apenas prescricoes em rascunho podem ser assinadas",
            )

        signed_at = utcnow()
        signature_hash = generate_signature_hash(
            prescription_signature_payload(prescription, doctor), signed_at
        )

        prescription.status = PrescriptionStatus.SIGNED
        prescription.signature_hash = signature_hash
        prescription.signed_at = signed_at
        prescription.signed_by_ip = ip_address

        record_audit(
            self.db,
            AuditAction.SIGN,
            "Prescription",
            prescription.id,
            user_id=doctor.user_id,
            organization_id=organization_id,
            metadata={"signatureHash": signature_hash, "signedAt": iso_timestamp(signed_at)},
            ip_address=ip_address,
        )
        await self.db.commit()

        logger.info(f"Prescription {prescription.id} signed by doctor {doctor.id}")

        patient = prescription.patient
        if patient.email:
            await self.task_queue.enqueue_email(
                "prescription_ready",
                patient.email,
                {
                    "patient_name": patient.name,
                    "product_name": prescription.product_name,
                    "prescription_id": str(prescription.id),
                },
            )

        return PrescriptionResponse.model_validate(prescription)

    async def revoke(
        self,
        organization_id: UUID,
        prescription_id: UUID,
        doctor: Optional[DoctorProfile],
        reason: str,
    ) -> PrescriptionResponse:
        prescription = await self.get_prescription(organization_id, prescription_id)
        doctor = self._check_author(prescription, doctor, "revogar")

        if prescription.status == PrescriptionStatus.REVOKED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prescricao ja revogada")

        prescription.status = PrescriptionStatus.REVOKED
        prescription.revoked_at = utcnow()
        prescription.revoke_reason = reason

        record_audit(
            self.db,
            AuditAction.UPDATE,
            "Prescription",
            prescription.id,
            user_id=doctor.user_id,
            organization_id=organization_id,
            metadata={"action": "REVOKE", "reason": reason},
        )
        await self.db.commit()

        logger.info(f"Prescription {prescription.id} revoked")
        return PrescriptionResponse.model_validate(prescription)


class ProductCatalogService:
    """Read-only access to the cannabis product catalog."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def search(
        self, search: Optional[str] = None, active_compound: Optional[str] = None
    ) -> list[CannabisProductResponse]:
        stmt = select(CannabisProduct).where(CannabisProduct.is_active.is_(True))
        if search:
            term = f"%{search}%"
            stmt = stmt.where(or_(CannabisProduct.name.ilike(term), CannabisProduct.manufacturer.ilike(term)))
        if active_compound:
            stmt = stmt.where(CannabisProduct.active_compound == active_compound)

        products = await self.db.scalars(stmt.order_by(CannabisProduct.name.asc()))
        return [CannabisProductResponse.model_validate(p) for p in products]

    async def get(self, product_id: UUID) -> CannabisProductResponse:
        product = await self.db.get(CannabisProduct, product_id)
        if product is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Produto nao encontrado")
        return CannabisProductResponse.model_validate(product)
