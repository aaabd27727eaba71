"""Super-admin back-office schemas."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from app.models import (
    AnvisaReportStatus,
    AuditAction,
    ConsultationStatus,
    ConsultationType,
    MembershipRole,
    OrganizationType,
    PipelineStatus,
    PrescriptionStatus,
    RecordStatus,
    SubscriptionStatus,
    TemplateType,
)
from app.schemas.common import CamelModel, Pagination
from app.schemas.organization import SubscriptionResponse
from app.schemas.patient import PatientDocumentResponse


class SubscriptionTotals(CamelModel):
    active: int
    trial: int


class PlatformStats(CamelModel):
    total_doctors: int
    total_patients: int
    total_consultations: int
    total_organizations: int
    subscriptions: SubscriptionTotals
    consultations_by_status: dict[str, int]
    estimated_monthly_revenue: float


# ============================================================================
# Doctors
# ============================================================================


class AdminUser(CamelModel):
    id: UUID
    email: str
    name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool
    email_verified: bool
    mfa_enabled: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime


class AdminOrganizationRef(CamelModel):
    id: UUID
    name: str
    slug: str
    type: OrganizationType


class AdminMembership(CamelModel):
    id: UUID
    role: MembershipRole
    is_active: bool
    organization: AdminOrganizationRef
    subscription: Optional[SubscriptionResponse] = None


class DoctorCounts(CamelModel):
    consultations: int
    medical_records: int
    prescriptions: int
    anvisa_reports: int


class AdminDoctor(CamelModel):
    id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    crm_verified: bool
    user: AdminUser
    memberships: list[AdminMembership] = []
    stats: DoctorCounts
    created_at: datetime


class AdminDoctorList(CamelModel):
    doctors: list[AdminDoctor]
    pagination: Pagination


class DoctorDetailStats(CamelModel):
    total_consultations: int
    completed_consultations: int
    total_patients: int
    total_prescriptions: int
    total_reports: int
    consultations_by_status: dict[str, int]


class AdminDoctorDetail(AdminDoctor):
    detail_stats: DoctorDetailStats


class DoctorPatientCounts(CamelModel):
    consultations: int
    prescriptions: int
    anvisa_reports: int


class AdminDoctorPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf_last_four: str
    birth_date: Optional[date] = None
    pipeline_status: PipelineStatus
    created_at: datetime
    stats: DoctorPatientCounts


class AdminDoctorPatientList(CamelModel):
    patients: list[AdminDoctorPatient]
    pagination: Pagination


class AdminPatientRef(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None


class AdminConsultation(CamelModel):
    id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    patient: AdminPatientRef
    doctor_name: Optional[str] = None


class AdminConsultationList(CamelModel):
    consultations: list[AdminConsultation]
    pagination: Pagination


class AdminReport(CamelModel):
    id: UUID
    status: AnvisaReportStatus
    protocol_number: Optional[str] = None
    signed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    patient: AdminPatientRef
    doctor_name: Optional[str] = None


class AdminReportList(CamelModel):
    reports: list[AdminReport]
    pagination: Pagination


class AdminPrescription(CamelModel):
    id: UUID
    product_name: str
    concentration: str
    dosage: str
    quantity: str
    valid_until: date
    status: PrescriptionStatus
    signed_at: Optional[datetime] = None
    created_at: datetime
    patient: AdminPatientRef
    doctor_name: Optional[str] = None


class AdminPrescriptionList(CamelModel):
    prescriptions: list[AdminPrescription]
    pagination: Pagination


class AdminMedicalRecord(CamelModel):
    id: UUID
    template_type: TemplateType
    status: RecordStatus
    signed_at: Optional[datetime] = None
    created_at: datetime
    doctor_name: Optional[str] = None


# ============================================================================
# Organizations
# ============================================================================


class OrganizationStats(CamelModel):
    members: int
    patients: int
    consultations: int


class AdminOrganization(CamelModel):
    id: UUID
    name: str
    slug: str
    type: OrganizationType
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime
    current_subscription: Optional[SubscriptionResponse] = None
    stats: OrganizationStats


class AdminOrganizationList(CamelModel):
    organizations: list[AdminOrganization]
    pagination: Pagination


# ============================================================================
# Patients
# ============================================================================


class PatientCounts(CamelModel):
    consultations: int
    prescriptions: int
    anvisa_reports: int
    medical_records: int


class AdminPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf_last_four: str
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    allergies: list[Any] = []
    conditions: list[Any] = []
    medications: list[Any] = []
    pipeline_status: PipelineStatus
    organization: AdminOrganizationRef
    documents: list[PatientDocumentResponse] = []
    stats: PatientCounts
    created_at: datetime
    updated_at: datetime


class AdminPatientList(CamelModel):
    patients: list[AdminPatient]
    pagination: Pagination


class PatientDetailStats(CamelModel):
    total_consultations: int
    completed_consultations: int
    total_prescriptions: int
    total_reports: int
    total_records: int


class AdminPatientDetail(AdminPatient):
    consultations: list[AdminConsultation] = []
    prescriptions: list[AdminPrescription] = []
    anvisa_reports: list[AdminReport] = []
    medical_records: list[AdminMedicalRecord] = []
    detail_stats: PatientDetailStats


# ============================================================================
# Audit logs
# ============================================================================


class AuditUser(CamelModel):
    id: UUID
    email: str
    name: str


class AuditLogResponse(CamelModel):
    id: UUID
    organization_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    action: AuditAction
    entity: str
    entity_id: str
    old_data: Optional[dict[str, Any]] = None
    new_data: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    user: Optional[AuditUser] = None


class AuditLogList(CamelModel):
    logs: list[AuditLogResponse]
    pagination: Pagination
