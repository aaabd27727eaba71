"""Platform back-office endpoints for super admins."""

from datetime import date
from typing import Annotated, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import DbSession, require_super_admin
from app.models import (
    AnvisaReportStatus,
    AuditAction,
    ConsultationStatus,
    OrganizationType,
    PipelineStatus,
    PrescriptionStatus,
)
from app.schemas.super_admin import (
    AdminConsultationList,
    AdminDoctorDetail,
    AdminDoctorList,
    AdminDoctorPatientList,
    AdminOrganizationList,
    AdminPatientDetail,
    AdminPatientList,
    AdminPrescriptionList,
    AdminReportList,
    AuditLogList,
    PlatformStats,
)
from app.services.super_admin import SuperAdminService

router = APIRouter(dependencies=[Depends(require_super_admin)])

Page = Annotated[int, Query(ge=1)]
Limit = Annotated[int, Query(ge=1, le=100)]


@router.get("/dashboard", response_model=PlatformStats, summary="Platform totals")
async def dashboard(db: DbSession) -> PlatformStats:
    return await SuperAdminService(db).dashboard()


@router.get(
    "/doctors",
    response_model=AdminDoctorList,
    summary="All doctors",
    description="status=active keeps doctors with at least one active membership.",
)
async def list_doctors(
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    search: Optional[str] = None,
    doctor_status: Annotated[Literal["active", "inactive", "all"], Query(alias="status")] = "all",
) -> AdminDoctorList:
    return await SuperAdminService(db).list_doctors(page, limit, search, doctor_status)


@router.get("/doctors/{doctor_id}", response_model=AdminDoctorDetail, summary="Doctor detail")
async def get_doctor(doctor_id: UUID, db: DbSession) -> AdminDoctorDetail:
    return await SuperAdminService(db).doctor_detail(doctor_id)


@router.get("/doctors/{doctor_id}/patients", response_model=AdminDoctorPatientList, summary="Doctor's patients")
async def doctor_patients(
    doctor_id: UUID,
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    search: Optional[str] = None,
) -> AdminDoctorPatientList:
    return await SuperAdminService(db).doctor_patients(doctor_id, page, limit, search)


@router.get(
    "/doctors/{doctor_id}/consultations",
    response_model=AdminConsultationList,
    summary="Doctor's consultations",
)
async def doctor_consultations(
    doctor_id: UUID,
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    consultation_status: Annotated[Optional[ConsultationStatus], Query(alias="status")] = None,
    start_date: Annotated[Optional[date], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[date], Query(alias="endDate")] = None,
) -> AdminConsultationList:
    return await SuperAdminService(db).doctor_consultations(
        doctor_id, page, limit, consultation_status, start_date, end_date
    )


@router.get("/doctors/{doctor_id}/reports", response_model=AdminReportList, summary="Doctor's ANVISA reports")
async def doctor_reports(
    doctor_id: UUID,
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    report_status: Annotated[Optional[AnvisaReportStatus], Query(alias="status")] = None,
) -> AdminReportList:
    return await SuperAdminService(db).doctor_reports(doctor_id, page, limit, report_status)


@router.get(
    "/doctors/{doctor_id}/prescriptions",
    response_model=AdminPrescriptionList,
    summary="Doctor's prescriptions",
)
async def doctor_prescriptions(
    doctor_id: UUID,
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    prescription_status: Annotated[Optional[PrescriptionStatus], Query(alias="status")] = None,
) -> AdminPrescriptionList:
    return await SuperAdminService(db).doctor_prescriptions(doctor_id, page, limit, prescription_status)


@router.get("/organizations", response_model=AdminOrganizationList, summary="All organizations")
async def list_organizations(
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    search: Optional[str] = None,
    organization_type: Annotated[Optional[OrganizationType], Query(alias="type")] = None,
) -> AdminOrganizationList:
    return await SuperAdminService(db).list_organizations(page, limit, search, organization_type)


@router.get("/patients", response_model=AdminPatientList, summary="All patients")
async def list_patients(
    db: DbSession,
    page: Page = 1,
    limit: Limit = 10,
    search: Optional[str] = None,
    pipeline_status: Annotated[Optional[PipelineStatus], Query(alias="pipelineStatus")] = None,
) -> AdminPatientList:
    return await SuperAdminService(db).list_patients(page, limit, search, pipeline_status)


@router.get("/patients/{patient_id}", response_model=AdminPatientDetail, summary="Patient detail")
async def get_patient(patient_id: UUID, db: DbSession) -> AdminPatientDetail:
    return await SuperAdminService(db).patient_detail(patient_id)


@router.get("/audit-logs", response_model=AuditLogList, summary="Audit trail")
async def audit_logs(
    db: DbSession,
    page: Page = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    action: Optional[AuditAction] = None,
    entity: Optional[str] = None,
    user_id: Annotated[Optional[UUID], Query(alias="userId")] = None,
    start_date: Annotated[Optional[date], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[date], Query(alias="endDate")] = None,
) -> AuditLogList:
    return await SuperAdminService(db).audit_logs(page, limit, action, entity, user_id, start_date, end_date)
