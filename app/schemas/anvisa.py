"""ANVISA report schemas."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field

from app.models import AnvisaReportStatus
from app.schemas.common import CamelModel, RequestModel, TenantRequestModel

# ============================================================================
# Form data
#
# Every field is optional so drafts can be saved; completeness is reported by
# the checklist and consent is enforced on signing.
# ============================================================================


class FormAddress(RequestModel):
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class PatientForm(RequestModel):
    name: Optional[str] = None
    cpf: Optional[str] = None
    birth_date: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[FormAddress] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class DoctorForm(RequestModel):
    name: Optional[str] = None
    crm: Optional[str] = None
    uf_crm: Optional[str] = None
    specialty: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[FormAddress] = None


class DiagnosisForm(RequestModel):
    icd10_code: Optional[str] = None
    icd10_description: Optional[str] = None
    clinical_history: Optional[str] = None
    previous_treatments: Optional[str] = None
    treatment_failures: Optional[str] = None
    scientific_evidence: Optional[str] = None
    expected_benefits: Optional[str] = None
    potential_risks: Optional[str] = None


class PrescriptionForm(RequestModel):
    product_name: Optional[str] = None
    manufacturer: Optional[str] = None
    composition: Optional[str] = None
    concentration: Optional[str] = None
    presentation: Optional[str] = None
    administration_route: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    quantity: Optional[str] = None


class MonitoringForm(RequestModel):
    return_frequency: Optional[str] = None
    evaluation_parameters: Optional[list[str]] = None
    discontinuation_criteria: Optional[str] = None


class DeclarationsForm(RequestModel):
    patient_informed: bool = False
    risks_explained: bool = False
    alternatives_discussed: bool = False
    consent_obtained: bool = False


class AnvisaFormData(RequestModel):
    patient: Optional[PatientForm] = None
    doctor: Optional[DoctorForm] = None
    diagnosis: Optional[DiagnosisForm] = None
    prescription: Optional[PrescriptionForm] = None
    monitoring: Optional[MonitoringForm] = None
    declarations: Optional[DeclarationsForm] = None

    def to_storage(self) -> dict[str, Any]:
        """camelCase dict of the sections that were sent."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# ============================================================================
# Requests
# ============================================================================


class AnvisaReportCreate(TenantRequestModel):
    medical_record_id: UUID
    prescription_id: Optional[UUID] = None
    form_data: AnvisaFormData = Field(default_factory=AnvisaFormData)


class AnvisaReportUpdate(TenantRequestModel):
    form_data: Optional[AnvisaFormData] = None


class SubmitReportRequest(TenantRequestModel):
    protocol_number: Optional[str] = None


class ReportStatusUpdate(TenantRequestModel):
    status: Literal[AnvisaReportStatus.APPROVED, AnvisaReportStatus.REJECTED]
    anvisa_response: Optional[dict[str, Any]] = None


# ============================================================================
# Responses
# ============================================================================


class ReportPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None


class ReportDoctorUser(CamelModel):
    name: str
    email: str


class ReportDoctor(CamelModel):
    id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    user: ReportDoctorUser


class AnvisaReportResponse(CamelModel):
    id: UUID
    organization_id: UUID
    medical_record_id: UUID
    prescription_id: Optional[UUID] = None
    patient_id: UUID
    doctor_id: UUID
    form_data: dict[str, Any]
    status: AnvisaReportStatus
    signature_hash: Optional[str] = None
    signed_at: Optional[datetime] = None
    pdf_url: Optional[str] = None
    package_url: Optional[str] = None
    submitted_at: Optional[datetime] = None
    protocol_number: Optional[str] = None
    expires_at: Optional[datetime] = None
    anvisa_response: Optional[dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    patient: ReportPatient
    doctor: ReportDoctor


class ChecklistResponse(CamelModel):
    """Submission readiness; keys follow the Portuguese checklist labels."""

    laudo_completo: bool
    prescricao_assinada: bool
    tcle_assinado: bool
    documentos_paciente: bool
    crm_verificado: bool
    dados_completos: bool
    pronto_para_submissao: bool
