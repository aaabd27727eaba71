"""Medical records: templated clinical notes with hash signatures."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decrypt_cpf, generate_signature_hash, iso_timestamp
from app.models import AuditAction, Consultation, DoctorProfile, MedicalRecord, Patient, RecordStatus, TemplateType
from app.models.base import utcnow
from app.schemas.medical_record import (
    MedicalRecordCreate,
    MedicalRecordDetailResponse,
    MedicalRecordResponse,
    MedicalRecordUpdate,
    RecordDoctor,
    RecordDoctorUser,
    RecordPatient,
    TemplateSection,
    TemplateStructure,
)
from app.services.audit import record_audit

logger = logging.getLogger(__name__)


def _section(section_id: str, title: str, *fields: str) -> TemplateSection:
    return TemplateSection(id=section_id, title=title, fields=list(fields))


TEMPLATES: dict[TemplateType, TemplateStructure] = {
    TemplateType.PRIMEIRA_CONSULTA: TemplateStructure(
        sections=[
            _section("chief_complaint", "Queixa Principal", "chiefComplaint", "historyOfPresentIllness"),
            _section(
                "history",
                "Historia Medica",
                "pastMedicalHistory",
                "familyHistory",
                "socialHistory",
                "currentMedications",
                "allergies",
            ),
            _section(
                "cannabis_history",
                "Experiencia com Cannabis",
                "previousCannabisUse",
                "previousCannabisExperience",
            ),
            _section("physical_exam", "Exame Fisico", "vitalSigns", "physicalExam"),
            _section("diagnosis", "Diagnostico", "primaryDiagnosis", "secondaryDiagnoses"),
            _section("treatment", "Plano de Tratamento", "treatmentPlan", "cannabisRecommendation"),
            _section("follow_up", "Acompanhamento", "followUpInstructions", "nextAppointment"),
        ]
    ),
    TemplateType.RETORNO: TemplateStructure(
        sections=[
            _section("treatment_response", "Resposta ao Tratamento", "treatmentResponse", "effectiveness"),
            _section(
                "quality_metrics",
                "Metricas de Qualidade de Vida",
                "qualityOfLife",
                "painLevel",
                "sleepQuality",
            ),
            _section("side_effects", "Efeitos Colaterais", "sideEffects"),
            _section("physical_exam", "Exame Fisico", "vitalSigns", "physicalExam"),
            _section("adjustment", "Ajustes", "currentDose", "newDose", "adjustmentReason"),
            _section("follow_up", "Proximo Retorno", "followUpInstructions", "nextAppointment"),
        ]
    ),
    TemplateType.AJUSTE_DOSE: TemplateStructure(
        sections=[
            _section("current_status", "Situacao Atual", "currentDose", "effectiveness", "sideEffects"),
            _section("adjustment", "Ajuste de Dose", "newDose", "adjustmentReason"),
            _section("quality_metrics", "Metricas", "painLevel", "sleepQuality", "qualityOfLife"),
            _section("notes", "Observacoes", "notes", "followUpInstructions"),
        ]
    ),
}


def get_template_structure(template_type: str) -> TemplateStructure:
    """
    Section layout of a record template.

    Raises:
        HTTPException: 404 for an unknown template name
    """
    try:
        return TEMPLATES[TemplateType(template_type)]
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template {template_type} nao encontrado",
        )


def record_signature_payload(record: MedicalRecord, doctor: DoctorProfile) -> dict:
    return {
        "recordId": str(record.id),
        "patientId": str(record.patient_id),
        "doctorId": str(record.doctor_id),
        "doctorCrm": doctor.crm,
        "doctorUfCrm": doctor.uf_crm,
        "clinicalData": record.clinical_data,
    }


class MedicalRecordService:
    """Organization-scoped medical record operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_record(self, organization_id: UUID, record_id: UUID) -> MedicalRecord:
        """
        Raises:
            HTTPException: 404 if absent, 403 if it belongs to another organization
        """
        record = await self.db.get(MedicalRecord, record_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prontuario nao encontrado")
        if record.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")
        return record

    async def create(
        self, organization_id: UUID, doctor: DoctorProfile, data: MedicalRecordCreate
    ) -> MedicalRecordResponse:
        """
        Open a DRAFT record for a consultation of the calling doctor.

        Raises:
            HTTPException: 404 unknown consultation, 403 not its doctor,
                400 a record already exists
        """
        consultation = await self.db.get(Consultation, data.consultation_id)
        if consultation is None or consultation.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consulta nao encontrada")

        if consultation.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico da consulta pode criar o prontuario",
            )

        existing = await self.db.scalar(
            select(MedicalRecord.id).where(MedicalRecord.consultation_id == consultation.id)
        )
        if existing is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Ja existe um prontuario para esta consulta",
            )

        record = MedicalRecord(
            organization_id=organization_id,
            consultation_id=consultation.id,
            patient_id=consultation.patient_id,
            doctor_id=doctor.id,
            template_type=data.template_type,
            clinical_data=data.clinical_data.to_storage(),
            status=RecordStatus.DRAFT,
        )
        self.db.add(record)
        await self.db.commit()

        logger.info(f"Medical record {record.id} created for consultation {consultation.id}")
        return MedicalRecordResponse.model_validate(record)

    async def list_by_patient(self, organization_id: UUID, patient_id: UUID) -> list[MedicalRecordResponse]:
        patient = await self.db.get(Patient, patient_id)
        if patient is None or patient.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente nao encontrado")

        records = await self.db.scalars(
            select(MedicalRecord)
            .where(MedicalRecord.patient_id == patient_id)
            .order_by(MedicalRecord.created_at.desc())
        )
        return [MedicalRecordResponse.model_validate(r) for r in records]

    async def detail(self, organization_id: UUID, record_id: UUID) -> MedicalRecordDetailResponse:
        """Record with the patient (CPF decrypted) and the doctor."""
        record = await self.get_record(organization_id, record_id)
        patient = record.patient
        doctor = record.doctor

        return MedicalRecordDetailResponse(
            **MedicalRecordResponse.model_validate(record).model_dump(),
            patient=RecordPatient(
                id=patient.id,
                name=patient.name,
                birth_date=patient.birth_date,
                gender=patient.gender,
                allergies=patient.allergies,
                conditions=patient.conditions,
                medications=patient.medications,
                cpf=decrypt_cpf(patient.cpf_encrypted),
            ),
            doctor=RecordDoctor(
                id=doctor.id,
                crm=doctor.crm,
                uf_crm=doctor.uf_crm,
                specialty=doctor.specialty,
                user=RecordDoctorUser(name=doctor.user.name, email=doctor.user.email),
            ),
        )

    async def update(
        self,
        organization_id: UUID,
        record_id: UUID,
        doctor: Optional[DoctorProfile],
        data: MedicalRecordUpdate,
    ) -> MedicalRecordResponse:
        """Merge clinical data into a DRAFT record of the calling doctor."""
        record = await self.get_record(organization_id, record_id)

        if doctor is None or record.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico responsavel pode editar o prontuario",
            )
        if record.status == RecordStatus.SIGNED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Prontuario ja assinado nao pode ser editado",
            )

        if data.clinical_data is not None:
            record.clinical_data = {**record.clinical_data, **data.clinical_data.to_storage()}

        await self.db.commit()
        return MedicalRecordResponse.model_validate(record)

    async def sign(
        self,
        organization_id: UUID,
        record_id: UUID,
        doctor: Optional[DoctorProfile],
        ip_address: str,
    ) -> MedicalRecordResponse:
        """
        Sign a record, freezing its clinical data.

        The signature hash covers record, patient and doctor ids, the CRM and
        the clinical data at signing time. An AuditLog SIGN row is written in
        the same transaction.

        Raises:
            HTTPException: 403 not the author, 400 already signed
        """
        record = await self.get_record(organization_id, record_id)

        if doctor is None or record.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico responsavel pode assinar o prontuario",
            )
        if record.status == RecordStatus.SIGNED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prontuario ja assinado")

        signed_at = utcnow()
        signature_hash = generate_signature_hash(record_signature_payload(record, doctor), signed_at)

        record.status = RecordStatus.SIGNED
        record.signature_hash = signature_hash
        record.signed_at = signed_at
        record.signed_by_ip = ip_address

        record_audit(
            self.db,
            AuditAction.SIGN,
            "MedicalRecord",
            record.id,
            user_id=doctor.user_id,
            organization_id=organization_id,
            metadata={"signatureHash": signature_hash, "signedAt": iso_timestamp(signed_at)},
            ip_address=ip_address,
        )
        await self.db.commit()

        logger.info(f"Medical record {record.id} signed by doctor {doctor.id}")
        return MedicalRecordResponse.model_validate(record)
