"""Self-service portal for patients with a PATIENT membership."""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    AnvisaReport,
    AnvisaReportStatus,
    Consultation,
    ConsultationStatus,
    DoctorProfile,
    DocumentType,
    Organization,
    Patient,
    PatientDocument,
    Prescription,
    PrescriptionStatus,
    User,
)
from app.models.base import utcnow
from app.schemas.patient import PatientDocumentResponse
from app.schemas.patient_portal import (
    DocumentDownloadResponse,
    PortalConsultation,
    PortalConsultationsResponse,
    PortalDashboardResponse,
    PortalDocumentsResponse,
    PortalDoctor,
    PortalNextConsultation,
    PortalOrganization,
    PortalPatientSummary,
    PortalPrescription,
    PortalPrescriptionsResponse,
    PortalProduct,
    PortalProfile,
    PortalReport,
    PortalReportPrescription,
    PortalReportsResponse,
    PortalStats,
    RequiredDocument,
)
from app.services.storage import DocumentStorageService
from app.utils.timezones import local_today

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SIZE = 10 * 1024 * 1024
DOWNLOAD_URL_TTL = timedelta(hours=1)
ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "application/pdf")

# (type, label, required)
DOCUMENT_CHECKLIST = (
    (DocumentType.RG, "RG ou CNH", True),
    (DocumentType.CPF, "CPF", True),
    (DocumentType.COMPROVANTE_RESIDENCIA, "Comprovante de Residencia", True),
    (DocumentType.LAUDO_ANTERIOR, "Exames/Laudos Anteriores", False),
)
REQUIRED_DOCUMENT_TYPES = tuple(doc_type for doc_type, _, required in DOCUMENT_CHECKLIST if required)
PENDING_REPORT_STATUSES = (
    AnvisaReportStatus.DRAFT,
    AnvisaReportStatus.PENDING_SIGNATURE,
    AnvisaReportStatus.SIGNED,
)


def _doctor(doctor: DoctorProfile) -> PortalDoctor:
    return PortalDoctor(
        id=doctor.id,
        name=doctor.user.name,
        avatar_url=doctor.user.avatar_url,
        specialty=doctor.specialty,
        crm=doctor.crm,
        uf_crm=doctor.uf_crm,
    )


class PatientPortalService:
    """Read access to the caller's own patient record, plus document upload."""

    def __init__(self, db: AsyncSession, storage: Optional[DocumentStorageService] = None) -> None:
        self.db = db
        self.storage = storage

    async def find_patient(self, user: User, organization_id: UUID) -> Patient:
        """
        Patient of the organization registered with the caller's email.

        Raises:
            HTTPException: 404 when the clinic has no patient with that email
        """
        patient = await self.db.scalar(
            select(Patient)
            .where(Patient.organization_id == organization_id, func.lower(Patient.email) == user.email.lower())
            .limit(1)
        )
        if patient is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Perfil de paciente nao encontrado. Entre em contato com a clinica.",
            )
        return patient

    async def _organization(self, organization_id: UUID) -> PortalOrganization:
        return PortalOrganization.model_validate(await self.db.get(Organization, organization_id))

    async def profile(self, user: User, organization_id: UUID) -> PortalProfile:
        patient = await self.find_patient(user, organization_id)
        return PortalProfile(
            id=patient.id,
            name=patient.name,
            email=patient.email,
            phone=patient.phone,
            birth_date=patient.birth_date,
            gender=patient.gender,
            address=patient.address,
            allergies=patient.allergies,
            conditions=patient.conditions,
            medications=patient.medications,
            pipeline_status=patient.pipeline_status,
            organization=await self._organization(organization_id),
        )

    async def consultations(self, user: User, organization_id: UUID) -> PortalConsultationsResponse:
        patient = await self.find_patient(user, organization_id)
        consultations = (
            await self.db.scalars(
                select(Consultation)
                .where(Consultation.patient_id == patient.id, Consultation.organization_id == organization_id)
                .order_by(Consultation.scheduled_at.desc())
            )
        ).all()

        now = utcnow()
        return PortalConsultationsResponse(
            consultations=[
                PortalConsultation(
                    id=c.id,
                    type=c.type,
                    status=c.status,
                    scheduled_at=c.scheduled_at,
                    duration=c.duration,
                    started_at=c.started_at,
                    ended_at=c.ended_at,
                    daily_room_url=c.daily_room_url,
                    notes=c.notes,
                    doctor=_doctor(c.doctor),
                )
                for c in consultations
            ],
            upcoming=sum(
                1
                for c in consultations
                if c.status in (ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED)
                and c.scheduled_at > now
            ),
            completed=sum(1 for c in consultations if c.status == ConsultationStatus.COMPLETED),
        )

    async def prescriptions(self, user: User, organization_id: UUID) -> PortalPrescriptionsResponse:
        patient = await self.find_patient(user, organization_id)
        prescriptions = (
            await self.db.scalars(
                select(Prescription)
                .where(Prescription.patient_id == patient.id)
                .order_by(Prescription.created_at.desc())
            )
        ).all()

        today = local_today()
        items = []
        for p in prescriptions:
            is_expired = p.valid_until <= today
            items.append(
                PortalPrescription(
                    id=p.id,
                    product_name=p.product_name,
                    concentration=p.concentration,
                    dosage=p.dosage,
                    quantity=p.quantity,
                    instructions=p.instructions,
                    valid_until=p.valid_until,
                    status=p.status,
                    signed_at=p.signed_at,
                    created_at=p.created_at,
                    is_active=p.status == PrescriptionStatus.SIGNED and not is_expired,
                    is_expired=is_expired,
                    doctor=_doctor(p.doctor),
                    product=PortalProduct.model_validate(p.product) if p.product else None,
                )
            )

        return PortalPrescriptionsResponse(
            prescriptions=items,
            active=sum(1 for item in items if item.is_active),
            expired=sum(1 for item in items if item.is_expired),
        )

    async def _documents(self, patient_id: UUID) -> list[PatientDocument]:
        return list(
            await self.db.scalars(
                select(PatientDocument)
                .where(PatientDocument.patient_id == patient_id)
                .order_by(PatientDocument.uploaded_at.desc())
            )
        )

    async def documents(self, user: User, organization_id: UUID) -> PortalDocumentsResponse:
        patient = await self.find_patient(user, organization_id)
        documents = [PatientDocumentResponse.model_validate(d) for d in await self._documents(patient.id)]

        checklist = []
        for doc_type, label, required in DOCUMENT_CHECKLIST:
            of_type = [d for d in documents if d.type == doc_type]
            checklist.append(
                RequiredDocument(
                    type=doc_type,
                    label=label,
                    required=required,
                    uploaded=bool(of_type),
                    documents=of_type,
                )
            )

        return PortalDocumentsResponse(
            documents=documents,
            required_documents=checklist,
            total_uploaded=len(documents),
            required_missing=sum(1 for item in checklist if item.required and not item.uploaded),
        )

    async def upload_document(
        self,
        user: User,
        organization_id: UUID,
        document_type: str,
        filename: str,
        content_type: Optional[str],
        data: bytes,
    ) -> PatientDocumentResponse:
        """
        Store a document in object storage and register it.

        Raises:
            HTTPException: 400 on an unknown type, a file over 10 MB or a
                content type other than JPEG, PNG or PDF
        """
        patient = await self.find_patient(user, organization_id)

        try:
            doc_type = DocumentType(document_type)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Tipo de documento invalido"
            ) from e

        if len(data) > MAX_DOCUMENT_SIZE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Arquivo muito grande. Maximo: 10MB",
            )
        if content_type not in ALLOWED_MIME_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tipo de arquivo nao permitido. Use JPG, PNG ou PDF.",
            )

        storage_key = await self.storage.upload_document(patient.id, filename, data, content_type)

        document = PatientDocument(
            patient_id=patient.id,
            name=filename,
            type=doc_type,
            url=storage_key,
            mime_type=content_type,
            size=len(data),
        )
        self.db.add(document)
        await self.db.commit()

        logger.info(f"Document {document.id} ({doc_type.value}) uploaded for patient {patient.id}")
        return PatientDocumentResponse.model_validate(document)

    async def _own_document(self, user: User, organization_id: UUID, document_id: UUID) -> PatientDocument:
        patient = await self.find_patient(user, organization_id)
        document = await self.db.get(PatientDocument, document_id)
        if document is None or document.patient_id != patient.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Documento nao encontrado")
        return document

    async def download_url(
        self, user: User, organization_id: UUID, document_id: UUID
    ) -> DocumentDownloadResponse:
        """
        Presigned link to one of the caller's documents.

        Raises:
            HTTPException: 404 for a document of someone else, 503 when the
                storage cannot sign the link
        """
        document = await self._own_document(user, organization_id, document_id)
        try:
            url = await self.storage.get_presigned_url(document.url, DOWNLOAD_URL_TTL)
        except RuntimeError as e:
            logger.error(f"Error signing {document.url}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Armazenamento indisponivel",
            ) from e
        return DocumentDownloadResponse(url=url, expires_in=int(DOWNLOAD_URL_TTL.total_seconds()))

    async def delete_document(self, user: User, organization_id: UUID, document_id: UUID) -> None:
        document = await self._own_document(user, organization_id, document_id)

        try:
            await self.storage.delete_object(document.url)
        except RuntimeError as e:
            # The row is removed even when the object is already gone
            logger.error(f"Error deleting {document.url} from storage: {e}")

        await self.db.delete(document)
        await self.db.commit()

    async def anvisa_reports(self, user: User, organization_id: UUID) -> PortalReportsResponse:
        patient = await self.find_patient(user, organization_id)
        reports = (
            await self.db.scalars(
                select(AnvisaReport)
                .where(AnvisaReport.patient_id == patient.id)
                .order_by(AnvisaReport.created_at.desc())
            )
        ).all()

        prescription_ids = [r.prescription_id for r in reports if r.prescription_id]
        product_names: dict[UUID, str] = {}
        if prescription_ids:
            rows = await self.db.execute(
                select(Prescription.id, Prescription.product_name).where(Prescription.id.in_(prescription_ids))
            )
            product_names = {row[0]: row[1] for row in rows}

        return PortalReportsResponse(
            reports=[
                PortalReport(
                    id=r.id,
                    status=r.status,
                    pdf_url=r.pdf_url,
                    package_url=r.package_url,
                    protocol_number=r.protocol_number,
                    submitted_at=r.submitted_at,
                    expires_at=r.expires_at,
                    signed_at=r.signed_at,
                    created_at=r.created_at,
                    doctor=_doctor(r.doctor),
                    prescription=(
                        PortalReportPrescription(
                            id=r.prescription_id, product_name=product_names[r.prescription_id]
                        )
                        if r.prescription_id in product_names
                        else None
                    ),
                )
                for r in reports
            ],
            pending=sum(1 for r in reports if r.status in PENDING_REPORT_STATUSES),
            approved=sum(1 for r in reports if r.status == AnvisaReportStatus.APPROVED),
        )

    async def dashboard(self, user: User, organization_id: UUID) -> PortalDashboardResponse:
        patient = await self.find_patient(user, organization_id)
        now = utcnow()

        next_consultation = await self.db.scalar(
            select(Consultation)
            .where(
                Consultation.patient_id == patient.id,
                Consultation.status.in_((ConsultationStatus.SCHEDULED, ConsultationStatus.CONFIRMED)),
                Consultation.scheduled_at > now,
            )
            .order_by(Consultation.scheduled_at.asc())
            .limit(1)
        )
        active_prescriptions = await self.db.scalar(
            select(func.count(Prescription.id)).where(
                Prescription.patient_id == patient.id,
                Prescription.status == PrescriptionStatus.SIGNED,
                Prescription.valid_until > local_today(now),
            )
        ) or 0
        uploaded_types = set(
            await self.db.scalars(
                select(PatientDocument.type).where(PatientDocument.patient_id == patient.id)
            )
        )
        latest_report = (
            await self.db.execute(
                select(AnvisaReport.status, AnvisaReport.expires_at)
                .where(AnvisaReport.patient_id == patient.id)
                .order_by(AnvisaReport.created_at.desc())
                .limit(1)
            )
        ).first()

        return PortalDashboardResponse(
            patient=PortalPatientSummary(
                id=patient.id, name=patient.name, pipeline_status=patient.pipeline_status
            ),
            next_consultation=(
                PortalNextConsultation(
                    id=next_consultation.id,
                    type=next_consultation.type,
                    status=next_consultation.status,
                    scheduled_at=next_consultation.scheduled_at,
                    duration=next_consultation.duration,
                    daily_room_url=next_consultation.daily_room_url,
                    doctor=_doctor(next_consultation.doctor),
                )
                if next_consultation
                else None
            ),
            stats=PortalStats(
                active_prescriptions=active_prescriptions,
                pending_documents=sum(1 for t in REQUIRED_DOCUMENT_TYPES if t not in uploaded_types),
                anvisa_status=latest_report[0] if latest_report else None,
                anvisa_expires=latest_report[1] if latest_report else None,
            ),
            organization=await self._organization(organization_id),
        )
