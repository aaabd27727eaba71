"""Patient registry endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import DbSession, TenantContext, require_roles, require_subscription
from app.api.dependencies.roles import FRONT_DESK
from app.models import MembershipRole, PipelineStatus
from app.schemas.patient import (
    PatientCreate,
    PatientDetailResponse,
    PatientListResponse,
    PatientResponse,
    PatientUpdate,
    PipelineCount,
    PipelineStatusUpdate,
)
from app.services.patients import PatientService

router = APIRouter(dependencies=[Depends(require_subscription)])

Staff = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]


@router.post(
    "",
    response_model=PatientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register patient",
    description="CPF is validated, stored encrypted and indexed by hash.",
)
async def create_patient(data: PatientCreate, tenant: Staff, db: DbSession) -> PatientResponse:
    return await PatientService(db).create(tenant.organization_id, tenant.user_id, data)


@router.get("", response_model=PatientListResponse, summary="List patients")
async def list_patients(
    tenant: Reader,
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    search: Optional[str] = None,
    pipeline_status: Annotated[Optional[PipelineStatus], Query(alias="pipelineStatus")] = None,
) -> PatientListResponse:
    return await PatientService(db).list_patients(
        tenant.organization_id,
        page=page,
        limit=limit,
        search=search,
        pipeline_status=pipeline_status,
    )


@router.get("/pipeline-summary", response_model=list[PipelineCount], summary="Pipeline summary")
async def pipeline_summary(tenant: Staff, db: DbSession) -> list[PipelineCount]:
    return await PatientService(db).pipeline_summary(tenant.organization_id)


@router.get("/cpf/{cpf}", response_model=PatientDetailResponse, summary="Find patient by CPF")
async def find_by_cpf(cpf: str, tenant: Staff, db: DbSession) -> PatientDetailResponse:
    return await PatientService(db).find_by_cpf(tenant.organization_id, cpf)


@router.get("/{patient_id}", response_model=PatientDetailResponse, summary="Get patient")
async def get_patient(patient_id: UUID, tenant: Reader, db: DbSession) -> PatientDetailResponse:
    return await PatientService(db).detail(tenant.organization_id, patient_id)


@router.patch("/{patient_id}", response_model=PatientResponse, summary="Update patient")
async def update_patient(
    patient_id: UUID, data: PatientUpdate, tenant: Staff, db: DbSession
) -> PatientResponse:
    return await PatientService(db).update(tenant.organization_id, patient_id, data)


@router.patch(
    "/{patient_id}/pipeline-status",
    response_model=PatientResponse,
    summary="Move patient in the pipeline",
)
async def update_pipeline_status(
    patient_id: UUID, data: PipelineStatusUpdate, tenant: Staff, db: DbSession
) -> PatientResponse:
    return await PatientService(db).update_pipeline_status(tenant.organization_id, patient_id, data.status)
