"""Database models for CANNEO."""

from app.models.base import Base
from app.models.organization import Organization, OrganizationType
from app.models.user import User
from app.models.membership import Membership, MembershipRole
from app.models.doctor import DoctorProfile
from app.models.auth import OtpCode, OtpType, RefreshToken
from app.models.billing import BillingCycle, Plan, Subscription, SubscriptionStatus
from app.models.patient import DocumentType, Patient, PatientDocument, PipelineStatus
from app.models.consultation import Consultation, ConsultationStatus, ConsultationType
from app.models.availability import Availability, BlockedSlot
from app.models.medical_record import MedicalRecord, RecordStatus, TemplateType
from app.models.prescription import CannabisProduct, Prescription, PrescriptionStatus
from app.models.anvisa import AnvisaReport, AnvisaReportStatus
from app.models.audit import AuditAction, AuditLog
from app.models.legal import LegalTerm, LegalTermType

__all__ = [
    "Base",
    "Organization",
    "OrganizationType",
    "User",
    "Membership",
    "MembershipRole",
    "DoctorProfile",
    "OtpCode",
    "OtpType",
    "RefreshToken",
    "BillingCycle",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "DocumentType",
    "Patient",
    "PatientDocument",
    "PipelineStatus",
    "Consultation",
    "ConsultationStatus",
    "ConsultationType",
    "Availability",
    "BlockedSlot",
    "MedicalRecord",
    "RecordStatus",
    "TemplateType",
    "CannabisProduct",
    "Prescription",
    "PrescriptionStatus",
    "AnvisaReport",
    "AnvisaReportStatus",
    "AuditAction",
    "AuditLog",
    "LegalTerm",
    "LegalTermType",
]
