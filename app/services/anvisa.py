"""ANVISA import-authorization reports (laudos)."""

import logging
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decrypt_cpf, generate_signature_hash, iso_timestamp
from app.models import (
    AnvisaReport,
    AnvisaReportStatus,
    AuditAction,
    DocumentType,
    DoctorProfile,
    MedicalRecord,
    Patient,
    PatientDocument,
    PipelineStatus,
    Prescription,
    PrescriptionStatus,
)
from app.models.base import utcnow
from app.schemas.anvisa import (
    AnvisaFormData,
    AnvisaReportCreate,
    AnvisaReportResponse,
    AnvisaReportUpdate,
    ChecklistResponse,
    DeclarationsForm,
    DiagnosisForm,
    DoctorForm,
    FormAddress,
    MonitoringForm,
    PatientForm,
    PrescriptionForm,
    ReportStatusUpdate,
    SubmitReportRequest,
)
from app.services.audit import record_audit
from app.services.patients import set_pipeline_status
from app.services.task_queue import TaskQueueService, get_task_queue_service

logger = logging.getLogger(__name__)

REPORT_VALIDITY = timedelta(days=365)
LOCKED_STATUSES = (
    AnvisaReportStatus.SIGNED,
    AnvisaReportStatus.SUBMITTED,
    AnvisaReportStatus.APPROVED,
)
SIGNABLE_STATUSES = (AnvisaReportStatus.DRAFT, AnvisaReportStatus.PENDING_SIGNATURE)

DEFAULT_MONITORING = MonitoringForm(
    return_frequency="30 dias",
    evaluation_parameters=["Dor", "Qualidade do sono", "Funcionalidade", "Efeitos adversos"],
    discontinuation_criteria="Ineficacia ou efeitos adversos graves",
)

# Dotted camelCase paths that must be filled before submission
REQUIRED_FIELDS = (
    "patient.name",
    "patient.cpf",
    "doctor.crm",
    "diagnosis.icd10Code",
    "prescription.productName",
    "declarations.consentObtained",
)


def _lookup(data: dict[str, Any], path: str) -> Any:
    value: Any = data
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def is_form_complete(form_data: dict[str, Any]) -> bool:
    return all(_lookup(form_data, path) for path in REQUIRED_FIELDS)


def has_consent(form_data: dict[str, Any]) -> bool:
    return bool(_lookup(form_data, "declarations.consentObtained"))


class AnvisaReportService:
    """Organization-scoped ANVISA report workflow."""

    def __init__(self, db: AsyncSession, task_queue: Optional[TaskQueueService] = None) -> None:
        self.db = db
        self.task_queue = task_queue or get_task_queue_service()

    async def get_report(self, organization_id: UUID, report_id: UUID) -> AnvisaReport:
        """
        Raises:
            HTTPException: 404 if absent, 403 if it belongs to another organization
        """
        report = await self.db.get(AnvisaReport, report_id)
        if report is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laudo ANVISA nao encontrado")
        if report.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")
        return report

    async def _get_record(self, organization_id: UUID, record_id: UUID) -> MedicalRecord:
        record = await self.db.get(MedicalRecord, record_id)
        if record is None or record.organization_id != organization_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prontuario nao encontrado")
        return record

    def _check_author(self, report: AnvisaReport, doctor: Optional[DoctorProfile], verb: str) -> DoctorProfile:
        if doctor is None or report.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Apenas o medico responsavel pode {verb} o laudo",
            )
        return doctor

    async def create(
        self, organization_id: UUID, doctor: DoctorProfile, data: AnvisaReportCreate
    ) -> AnvisaReportResponse:
        """
        Raises:
            HTTPException: 404 unknown record, 403 not its doctor,
                400 prescription from another record
        """
        record = await self._get_record(organization_id, data.medical_record_id)
        if record.doctor_id != doctor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Apenas o medico do prontuario pode criar o laudo ANVISA",
            )

        if data.prescription_id is not None:
            prescription = await self.db.get(Prescription, data.prescription_id)
            if prescription is None or prescription.medical_record_id != record.id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Prescricao nao encontrada ou nao pertence ao prontuario",
                )

        report = AnvisaReport(
            organization_id=organization_id,
            medical_record_id=record.id,
            prescription_id=data.prescription_id,
            patient_id=record.patient_id,
            doctor_id=doctor.id,
            form_data=data.form_data.to_storage(),
            status=AnvisaReportStatus.DRAFT,
        )
        self.db.add(report)
        await self.db.commit()
        await self.db.refresh(report, ["patient", "doctor"])

        logger.info(f"ANVISA report {report.id} created from record {record.id}")
        return AnvisaReportResponse.model_validate(report)

    async def auto_fill(
        self,
        organization_id: UUID,
        medical_record_id: UUID,
        prescription_id: Optional[UUID] = None,
    ) -> AnvisaFormData:
        """Form pre-filled from the patient, doctor, record and prescription."""
        record = await self._get_record(organization_id, medical_record_id)
        patient = record.patient
        doctor = record.doctor
        clinical = record.clinical_data or {}
        primary = clinical.get("primaryDiagnosis") or {}
        recommendation = clinical.get("cannabisRecommendation") or {}

        address = patient.address or {}
        prescription_form = None
        if prescription_id is not None:
            prescription = await self.db.get(Prescription, prescription_id)
            if prescription is not None and prescription.organization_id == organization_id:
                product = prescription.product
                prescription_form = PrescriptionForm(
                    product_name=prescription.product_name,
                    manufacturer=product.manufacturer if product else "",
                    composition=product.active_compound if product else "",
                    concentration=prescription.concentration,
                    presentation=product.presentation if product else "",
                    administration_route=product.administration_route if product else "",
                    dosage=prescription.dosage,
                    frequency="",
                    duration="",
                    quantity=prescription.quantity,
                )

        return AnvisaFormData(
            patient=PatientForm(
                name=patient.name,
                cpf=decrypt_cpf(patient.cpf_encrypted),
                birth_date=patient.birth_date.isoformat() if patient.birth_date else "",
                nationality="Brasileira",
                address=FormAddress.model_validate(address),
                phone=patient.phone or "",
                email=patient.email or "",
            ),
            doctor=DoctorForm(
                name=doctor.user.name,
                crm=doctor.crm,
                uf_crm=doctor.uf_crm,
                specialty=doctor.specialty or "",
                phone=doctor.user.phone or "",
                email=doctor.user.email,
            ),
            diagnosis=DiagnosisForm(
                icd10_code=primary.get("icd10Code", ""),
                icd10_description=primary.get("description", ""),
                clinical_history=clinical.get("historyOfPresentIllness", ""),
                previous_treatments=clinical.get("pastMedicalHistory", ""),
                treatment_failures="",
                scientific_evidence="",
                expected_benefits=recommendation.get("duration", ""),
                potential_risks="",
            ),
            prescription=prescription_form,
            monitoring=DEFAULT_MONITORING.model_copy(deep=True),
            declarations=DeclarationsForm(),
        )

    async def list_reports(
        self, organization_id: UUID, patient_id: Optional[UUID] = None
    ) -> list[AnvisaReportResponse]:
        stmt = select(AnvisaReport).where(AnvisaReport.organization_id == organization_id)
        if patient_id is not None:
            patient = await self.db.get(Patient, patient_id)
            if patient is None or patient.organization_id != organization_id:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente nao encontrado")
            stmt = stmt.where(AnvisaReport.patient_id == patient_id)

        reports = await self.db.scalars(stmt.order_by(AnvisaReport.created_at.desc()))
        return [AnvisaReportResponse.model_validate(r) for r in reports]

    async def detail(self, organization_id: UUID, report_id: UUID) -> AnvisaReportResponse:
        return AnvisaReportResponse.model_validate(await self.get_report(organization_id, report_id))

    async def _has_required_documents(self, patient_id: UUID) -> bool:
        """RG or CPF plus proof of residence."""
        types = set(
            await self.db.scalars(
                select(PatientDocument.type).where(PatientDocument.patient_id == patient_id)
            )
        )
        has_identification = DocumentType.RG in types or DocumentType.CPF in types
        return has_identification and DocumentType.COMPROVANTE_RESIDENCIA in types

    async def checklist(self, organization_id: UUID, report_id: UUID) -> ChecklistResponse:
        report = await self.get_report(organization_id, report_id)
        form_data = report.form_data or {}

        prescription_signed = False
        if report.prescription_id is not None:
            prescription_status = await self.db.scalar(
                select(Prescription.status).where(Prescription.id == report.prescription_id)
            )
            prescription_signed = prescription_status == PrescriptionStatus.SIGNED

        complete = is_form_complete(form_data)
        items = {
            "laudo_completo": complete and report.signature_hash is not None,
            "prescricao_assinada": prescription_signed,
            "tcle_assinado": has_consent(form_data),
            "documentos_paciente": await self._has_required_documents(report.patient_id),
            "crm_verificado": report.doctor.crm_verified,
            "dados_completos": complete,
        }
        return ChecklistResponse(**items, pronto_para_submissao=all(items.values()))

    async def update(
        self,
        organization_id: UUID,
        report_id: UUID,
        doctor: Optional[DoctorProfile],
        data: AnvisaReportUpdate,
    ) -> AnvisaReportResponse:
        report = await self.get_report(organization_id, report_id)
        self._check_author(report, doctor, "editar")

        if report.status in LOCKED_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Laudo nao pode ser editado neste status",
            )

        if data.form_data is not None:
            report.form_data = {**report.form_data, **data.form_data.to_storage()}

        await self.db.commit()
        return AnvisaReportResponse.model_validate(report)

    async def sign(
        self,
        organization_id: UUID,
        report_id: UUID,
        doctor: Optional[DoctorProfile],
        ip_address: str,
    ) -> AnvisaReportResponse:
        """
        Sign a report; valid for one year.

        Raises:
            HTTPException: 403 not the author, 400 wrong status or missing consent
        """
        report = await self.get_report(organization_id, report_id)
        doctor = self._check_author(report, doctor, "assinar")

        if report.status not in SIGNABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Laudo nao pode ser assinado neste status",
            )
        if not has_consent(report.form_data or {}):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Consentimento do paciente e obrigatorio",
            )

        signed_at = utcnow()
        signature_hash = generate_signature_hash(
            {
                "reportId": str(report.id),
                "patientId": str(report.patient_id),
                "doctorId": str(report.doctor_id),
                "doctorCrm": doctor.crm,
                "doctorUfCrm": doctor.uf_crm,
                "formData": report.form_data,
            },
            signed_at,
        )

        report.status = AnvisaReportStatus.SIGNED
        report.signature_hash = signature_hash
        report.signed_at = signed_at
        report.expires_at = signed_at + REPORT_VALIDITY

        await set_pipeline_status(self.db, report.patient_id, PipelineStatus.DOCUMENTACAO_ANVISA)
        record_audit(
            self.db,
            AuditAction.SIGN,
            "AnvisaReport",
            report.id,
            user_id=doctor.user_id,
            organization_id=organization_id,
            metadata={"signatureHash": signature_hash, "signedAt": iso_timestamp(signed_at)},
            ip_address=ip_address,
        )
        await self.db.commit()

        logger.info(f"ANVISA report {report.id} signed by doctor {doctor.id}")
        return AnvisaReportResponse.model_validate(report)

    async def submit(
        self,
        organization_id: UUID,
        report_id: UUID,
        doctor: Optional[DoctorProfile],
        data: SubmitReportRequest,
    ) -> AnvisaReportResponse:
        report = await self.get_report(organization_id, report_id)
        self._check_author(report, doctor, "submeter")

        if report.status != AnvisaReportStatus.SIGNED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Apenas laudos assinados podem ser marcados como submetidos",
            )

        report.status = AnvisaReportStatus.SUBMITTED
        report.submitted_at = utcnow()
        report.protocol_number = data.protocol_number
        await set_pipeline_status(self.db, report.patient_id, PipelineStatus.SUBMETIDO_ANVISA)
        await self.db.commit()

        logger.info(f"ANVISA report {report.id} submitted (protocol {data.protocol_number})")
        return AnvisaReportResponse.model_validate(report)

    async def update_status(
        self, organization_id: UUID, report_id: UUID, data: ReportStatusUpdate
    ) -> AnvisaReportResponse:
        """Record the agency decision on a submitted report and tell the patient."""
        report = await self.get_report(organization_id, report_id)

        if report.status != AnvisaReportStatus.SUBMITTED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Apenas laudos submetidos podem ter o status atualizado",
            )

        report.status = data.status
        report.anvisa_response = data.anvisa_response
        if data.status == AnvisaReportStatus.APPROVED:
            await set_pipeline_status(self.db, report.patient_id, PipelineStatus.APROVADO)
        await self.db.commit()

        logger.info(f"ANVISA report {report.id} moved to {data.status.value}")

        patient = report.patient
        if patient.email:
            await self.task_queue.enqueue_email(
                "anvisa_status",
                patient.email,
                {"patient_name": patient.name, "status": data.status.value, "report_id": str(report.id)},
            )

        return AnvisaReportResponse.model_validate(report)
