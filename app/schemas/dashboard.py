"""Doctor dashboard schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from app.models import ConsultationStatus, ConsultationType, PipelineStatus
from app.schemas.common import CamelModel


class DashboardStats(CamelModel):
    total_patients: int
    consultations_today: int
    consultations_this_month: int
    completed_consultations_this_month: int
    total_reports: int
    pending_reports: int
    total_prescriptions: int
    active_prescriptions: int


class UpcomingPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class UpcomingConsultation(CamelModel):
    id: UUID
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime
    duration: int
    patient: UpcomingPatient


class RecentPatient(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    pipeline_status: PipelineStatus
    created_at: datetime


class DashboardResponse(CamelModel):
    stats: DashboardStats
    upcoming_consultations: list[UpcomingConsultation]
    recent_patients: list[RecentPatient]
    consultations_by_status: dict[str, int]


class DailySummary(CamelModel):
    date: date
    total: int
    completed: int
