"""Consultation schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from app.models import ConsultationStatus, ConsultationType
from app.schemas.common import CamelModel, TenantRequestModel, UTCDatetime


class ConsultationCreate(TenantRequestModel):
    patient_id: UUID
    doctor_id: UUID = Field(description="Doctor profile ID")
    type: ConsultationType
    scheduled_at: UTCDatetime
    duration: int = Field(default=60, ge=15, le=180, description="Minutes")
    notes: Optional[str] = None


class ConsultationUpdate(TenantRequestModel):
    non_nullable = ("type", "scheduled_at", "duration", "status")

    type: Optional[ConsultationType] = None
    scheduled_at: Optional[UTCDatetime] = None
    duration: Optional[int] = Field(default=None, ge=15, le=180)
    notes: Optional[str] = None
    status: Optional[ConsultationStatus] = None
    cancel_reason: Optional[str] = None


class CancelConsultationRequest(TenantRequestModel):
    reason: Optional[str] = None


class ConsultationPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf_last_four: str


class DoctorUser(CamelModel):
    id: UUID
    name: str
    email: str


class ConsultationDoctor(CamelModel):
    id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    user: DoctorUser


class ConsultationResponse(CamelModel):
    id: UUID
    organization_id: UUID
    patient_id: UUID
    doctor_id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    room_name: Optional[str] = None
    daily_room_url: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    canceled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    patient: ConsultationPatient
    doctor: ConsultationDoctor


class ConsultationListResponse(CamelModel):
    consultations: list[ConsultationResponse]
    total: int
    page: int
    limit: int
    total_pages: int


# ============================================================================
# Video
# ============================================================================


class VideoTokenResponse(CamelModel):
    token: str
    room_url: str
    room_name: str
    is_owner: bool


class VideoRoomInfoResponse(CamelModel):
    active: bool
    room_info: Optional[dict[str, Any]] = None
