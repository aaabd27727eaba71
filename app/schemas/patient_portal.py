"""Patient portal schemas."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from app.models import (
    AnvisaReportStatus,
    ConsultationStatus,
    ConsultationType,
    DocumentType,
    PipelineStatus,
    PrescriptionStatus,
)
from app.schemas.common import CamelModel
from app.schemas.patient import PatientDocumentResponse


class PortalOrganization(CamelModel):
    id: UUID
    name: str
    logo: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class PortalProfile(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    allergies: list[Any] = []
    conditions: list[Any] = []
    medications: list[Any] = []
    pipeline_status: PipelineStatus
    organization: PortalOrganization


class PortalDoctor(CamelModel):
    id: Optional[UUID] = None
    name: str
    avatar_url: Optional[str] = None
    specialty: Optional[str] = None
    crm: Optional[str] = None
    uf_crm: Optional[str] = None


class PortalConsultation(CamelModel):
    id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    daily_room_url: Optional[str] = None
    notes: Optional[str] = None
    doctor: PortalDoctor


class PortalConsultationsResponse(CamelModel):
    consultations: list[PortalConsultation]
    upcoming: int
    completed: int


class PortalProduct(CamelModel):
    id: UUID
    name: str
    manufacturer: str
    active_compound: str


class PortalPrescription(CamelModel):
    id: UUID
    product_name: str
    concentration: str
    dosage: str
    quantity: str
    instructions: Optional[str] = None
    valid_until: date
    status: PrescriptionStatus
    signed_at: Optional[datetime] = None
    created_at: datetime
    is_active: bool
    is_expired: bool
    doctor: PortalDoctor
    product: Optional[PortalProduct] = None


class PortalPrescriptionsResponse(CamelModel):
    prescriptions: list[PortalPrescription]
    active: int
    expired: int


class RequiredDocument(CamelModel):
    type: DocumentType
    label: str
    required: bool
    uploaded: bool
    documents: list[PatientDocumentResponse]


class PortalDocumentsResponse(CamelModel):
    documents: list[PatientDocumentResponse]
    required_documents: list[RequiredDocument]
    total_uploaded: int
    required_missing: int


class DocumentDownloadResponse(CamelModel):
    """Short-lived link to a stored document."""

    url: str
    expires_in: int


class PortalReportPrescription(CamelModel):
    id: UUID
    product_name: str


class PortalReport(CamelModel):
    id: UUID
    status: AnvisaReportStatus
    pdf_url: Optional[str] = None
    package_url: Optional[str] = None
    protocol_number: Optional[str] = None
    submitted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    created_at: datetime
    doctor: PortalDoctor
    prescription: Optional[PortalReportPrescription] = None


class PortalReportsResponse(CamelModel):
    reports: list[PortalReport]
    pending: int
    approved: int


class PortalPatientSummary(CamelModel):
    id: UUID
    name: str
    pipeline_status: PipelineStatus


class PortalNextConsultation(CamelModel):
    id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    daily_room_url: Optional[str] = None
    doctor: PortalDoctor


class PortalStats(CamelModel):
    active_prescriptions: int
    pending_documents: int
    anvisa_status: Optional[AnvisaReportStatus] = None
    anvisa_expires: Optional[datetime] = None


class PortalDashboardResponse(CamelModel):
    patient: PortalPatientSummary
    next_consultation: Optional[PortalNextConsultation] = None
    stats: PortalStats
    organization: PortalOrganization
