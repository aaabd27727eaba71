"""Patient schemas."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.models import ConsultationStatus, ConsultationType, DocumentType, PipelineStatus
from app.schemas.common import CamelModel, RequestModel, TenantRequestModel

CPF_PATTERN = r"^\d{3}\.?\d{3}\.?\d{3}-?\d{2}$"
ZIP_CODE_PATTERN = r"^\d{5}-?\d{3}$"


class Address(RequestModel):
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = Field(default=None, pattern=ZIP_CODE_PATTERN)


class PatientCreate(TenantRequestModel):
    """New patient. CPF accepts punctuated or bare digits."""

    name: str = Field(min_length=3, max_length=100)
    cpf: str = Field(pattern=CPF_PATTERN)
    birth_date: Optional[date] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[Address] = None
    allergies: list[str] = []
    conditions: list[str] = []
    medications: list[str] = []
    notes: Optional[str] = None


class PatientUpdate(TenantRequestModel):
    non_nullable = ("name", "allergies", "conditions", "medications")

    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    birth_date: Optional[date] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[Address] = None
    allergies: Optional[list[str]] = None
    conditions: Optional[list[str]] = None
    medications: Optional[list[str]] = None
    notes: Optional[str] = None


class PipelineStatusUpdate(TenantRequestModel):
    status: PipelineStatus


class PatientResponse(CamelModel):
    """Patient without CPF ciphertext or hash."""

    id: UUID
    name: str
    cpf_last_four: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    allergies: list[Any] = []
    conditions: list[Any] = []
    medications: list[Any] = []
    pipeline_status: PipelineStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PatientListResponse(CamelModel):
    patients: list[PatientResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class PipelineCount(CamelModel):
    status: PipelineStatus
    count: int


class PatientDocumentResponse(CamelModel):
    id: UUID
    patient_id: UUID
    name: str
    type: DocumentType
    url: str
    mime_type: str
    size: int
    uploaded_at: datetime


class PatientConsultationSummary(CamelModel):
    id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    doctor_name: Optional[str] = None


class PatientDetailResponse(PatientResponse):
    """Patient with decrypted CPF, recent consultations and documents."""

    cpf: str
    consultations: list[PatientConsultationSummary] = []
    documents: list[PatientDocumentResponse] = []
