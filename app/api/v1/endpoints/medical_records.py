"""Medical record (prontuario) endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.dependencies import DbSession, TenantContext, require_roles, require_subscription
from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK
from app.api.middleware.audit import get_client_ip
from app.models import MembershipRole
from app.schemas.medical_record import (
    MedicalRecordCreate,
    MedicalRecordDetailResponse,
    MedicalRecordResponse,
    MedicalRecordUpdate,
    TemplateStructure,
)
from app.services.doctors import find_doctor_profile, require_doctor_profile
from app.services.medical_records import MedicalRecordService, get_template_structure

router = APIRouter(dependencies=[Depends(require_subscription)])

Clinician = Annotated[TenantContext, Depends(require_roles(*CLINICAL_STAFF))]
Staff = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]


@router.post(
    "",
    response_model=MedicalRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create medical record",
    description="One record per consultation, written by the consultation's doctor.",
)
async def create_record(data: MedicalRecordCreate, tenant: Clinician, db: DbSession) -> MedicalRecordResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await MedicalRecordService(db).create(tenant.organization_id, doctor, data)


@router.get(
    "/templates/{template_type}",
    response_model=TemplateStructure,
    summary="Template sections",
)
async def get_template(template_type: str, tenant: Staff) -> TemplateStructure:
    return get_template_structure(template_type)


@router.get("", response_model=list[MedicalRecordResponse], summary="Records of a patient")
async def list_records(
    tenant: Reader,
    db: DbSession,
    patient_id: Annotated[UUID, Query(alias="patientId")],
) -> list[MedicalRecordResponse]:
    return await MedicalRecordService(db).list_by_patient(tenant.organization_id, patient_id)


@router.get("/{record_id}", response_model=MedicalRecordDetailResponse, summary="Get medical record")
async def get_record(record_id: UUID, tenant: Reader, db: DbSession) -> MedicalRecordDetailResponse:
    return await MedicalRecordService(db).detail(tenant.organization_id, record_id)


@router.patch(
    "/{record_id}",
    response_model=MedicalRecordResponse,
    summary="Update medical record",
    description="Merges clinicalData into the stored data. Signed records are read-only.",
)
async def update_record(
    record_id: UUID, data: MedicalRecordUpdate, tenant: Clinician, db: DbSession
) -> MedicalRecordResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await MedicalRecordService(db).update(tenant.organization_id, record_id, doctor, data)


@router.post(
    "/{record_id}/sign",
    response_model=MedicalRecordResponse,
    summary="Sign medical record",
    description="Stores the SHA-256 signature hash and locks the record.",
)
async def sign_record(
    record_id: UUID, request: Request, tenant: Clinician, db: DbSession
) -> MedicalRecordResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await MedicalRecordService(db).sign(tenant.organization_id, record_id, doctor, get_client_ip(request))
