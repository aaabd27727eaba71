"""Prescription and cannabis product schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.models import PrescriptionStatus
from app.schemas.common import CamelModel, TenantRequestModel


class PrescriptionCreate(TenantRequestModel):
    medical_record_id: UUID
    product_id: Optional[UUID] = None
    product_name: str = Field(min_length=1)
    concentration: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    quantity: str = Field(min_length=1)
    instructions: Optional[str] = None
    valid_until: date


class PrescriptionUpdate(TenantRequestModel):
    non_nullable = ("product_name", "concentration", "dosage", "quantity", "valid_until")

    product_id: Optional[UUID] = None
    product_name: Optional[str] = Field(default=None, min_length=1)
    concentration: Optional[str] = Field(default=None, min_length=1)
    dosage: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[str] = Field(default=None, min_length=1)
    instructions: Optional[str] = None
    valid_until: Optional[date] = None


class RevokePrescriptionRequest(TenantRequestModel):
    reason: str = Field(min_length=1)


class CannabisProductResponse(CamelModel):
    id: UUID
    name: str
    manufacturer: str
    active_compound: str
    concentration: str
    thc_percentage: Optional[Decimal] = None
    cbd_percentage: Optional[Decimal] = None
    presentation: str
    volume: Optional[str] = None
    administration_route: str
    description: Optional[str] = None
    anvisa_registration: Optional[str] = None


class PrescriptionPatient(CamelModel):
    id: UUID
    name: str
    birth_date: Optional[date] = None
    cpf: Optional[str] = None


class PrescriptionDoctorUser(CamelModel):
    name: str
    email: str


class PrescriptionDoctor(CamelModel):
    id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    user: PrescriptionDoctorUser


class PrescriptionResponse(CamelModel):
    id: UUID
    organization_id: UUID
    medical_record_id: UUID
    patient_id: UUID
    doctor_id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    concentration: str
    dosage: str
    quantity: str
    instructions: Optional[str] = None
    valid_until: date
    status: PrescriptionStatus
    signature_hash: Optional[str] = None
    signed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    product: Optional[CannabisProductResponse] = None


class PrescriptionDetailResponse(PrescriptionResponse):
    patient: PrescriptionPatient
    doctor: PrescriptionDoctor


class PrescriptionListResponse(CamelModel):
    prescriptions: list[PrescriptionDetailResponse]
    total: int
    page: int
    limit: int
    total_pages: int
