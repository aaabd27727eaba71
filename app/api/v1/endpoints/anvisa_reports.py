"""ANVISA report (laudo) endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.dependencies import DbSession, TenantContext, require_roles, require_subscription
from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK
from app.api.middleware.audit import get_client_ip
from app.models import MembershipRole
from app.schemas.anvisa import (
    AnvisaFormData,
    AnvisaReportCreate,
    AnvisaReportResponse,
    AnvisaReportUpdate,
    ChecklistResponse,
    ReportStatusUpdate,
    SubmitReportRequest,
)
from app.services.anvisa import AnvisaReportService
from app.services.doctors import find_doctor_profile, require_doctor_profile

router = APIRouter(dependencies=[Depends(require_subscription)])

Clinician = Annotated[TenantContext, Depends(require_roles(*CLINICAL_STAFF))]
Staff = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]


@router.post(
    "",
    response_model=AnvisaReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create ANVISA report",
)
async def create_report(data: AnvisaReportCreate, tenant: Clinician, db: DbSession) -> AnvisaReportResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AnvisaReportService(db).create(tenant.organization_id, doctor, data)


@router.get(
    "/auto-fill",
    response_model=AnvisaFormData,
    summary="Pre-filled form",
    description="Builds the form from the patient, doctor, medical record and optional prescription.",
)
async def auto_fill(
    tenant: Clinician,
    db: DbSession,
    medical_record_id: Annotated[UUID, Query(alias="medicalRecordId")],
    prescription_id: Annotated[Optional[UUID], Query(alias="prescriptionId")] = None,
) -> AnvisaFormData:
    return await AnvisaReportService(db).auto_fill(tenant.organization_id, medical_record_id, prescription_id)


@router.get("", response_model=list[AnvisaReportResponse], summary="List reports")
async def list_reports(
    tenant: Reader,
    db: DbSession,
    patient_id: Annotated[Optional[UUID], Query(alias="patientId")] = None,
) -> list[AnvisaReportResponse]:
    return await AnvisaReportService(db).list_reports(tenant.organization_id, patient_id)


@router.get("/{report_id}", response_model=AnvisaReportResponse, summary="Get report")
async def get_report(report_id: UUID, tenant: Reader, db: DbSession) -> AnvisaReportResponse:
    return await AnvisaReportService(db).detail(tenant.organization_id, report_id)


@router.get("/{report_id}/checklist", response_model=ChecklistResponse, summary="Submission checklist")
async def checklist(report_id: UUID, tenant: Staff, db: DbSession) -> ChecklistResponse:
    return await AnvisaReportService(db).checklist(tenant.organization_id, report_id)


@router.patch("/{report_id}", response_model=AnvisaReportResponse, summary="Update report form")
async def update_report(
    report_id: UUID, data: AnvisaReportUpdate, tenant: Clinician, db: DbSession
) -> AnvisaReportResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await AnvisaReportService(db).update(tenant.organization_id, report_id, doctor, data)


@router.post(
    "/{report_id}/sign",
    response_model=AnvisaReportResponse,
    summary="Sign report",
    description="Requires the patient's consent. Valid for one year.",
)
async def sign_report(
    report_id: UUID, request: Request, tenant: Clinician, db: DbSession
) -> AnvisaReportResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await AnvisaReportService(db).sign(tenant.organization_id, report_id, doctor, get_client_ip(request))


@router.post("/{report_id}/submit", response_model=AnvisaReportResponse, summary="Mark as submitted")
async def submit_report(
    report_id: UUID, tenant: Clinician, db: DbSession, data: Optional[SubmitReportRequest] = None
) -> AnvisaReportResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await AnvisaReportService(db).submit(
        tenant.organization_id, report_id, doctor, data or SubmitReportRequest()
    )


@router.patch("/{report_id}/status", response_model=AnvisaReportResponse, summary="Record ANVISA decision")
async def update_status(
    report_id: UUID, data: ReportStatusUpdate, tenant: Clinician, db: DbSession
) -> AnvisaReportResponse:
    return await AnvisaReportService(db).update_status(tenant.organization_id, report_id, data)
