"""Prescription and cannabis product catalog endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.dependencies import DbSession, Tenant, TenantContext, require_roles, require_subscription
from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK
from app.api.middleware.audit import get_client_ip
from app.models import MembershipRole, PrescriptionStatus
from app.schemas.prescription import (
    CannabisProductResponse,
    PrescriptionCreate,
    PrescriptionDetailResponse,
    PrescriptionListResponse,
    PrescriptionResponse,
    PrescriptionUpdate,
    RevokePrescriptionRequest,
)
from app.services.doctors import find_doctor_profile, require_doctor_profile
from app.services.prescriptions import PrescriptionService, ProductCatalogService

router = APIRouter(dependencies=[Depends(require_subscription)])
products_router = APIRouter()

Clinician = Annotated[TenantContext, Depends(require_roles(*CLINICAL_STAFF))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]


@router.post(
    "",
    response_model=PrescriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create prescription",
    description="Draft prescription attached to a medical record of the caller.",
)
async def create_prescription(data: PrescriptionCreate, tenant: Clinician, db: DbSession) -> PrescriptionResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await PrescriptionService(db).create(tenant.organization_id, doctor, data)


@router.get("", response_model=PrescriptionListResponse, summary="List prescriptions")
async def list_prescriptions(
    tenant: Reader,
    db: DbSession,
    patient_id: Annotated[Optional[UUID], Query(alias="patientId")] = None,
    prescription_status: Annotated[Optional[PrescriptionStatus], Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PrescriptionListResponse:
    return await PrescriptionService(db).list_prescriptions(
        tenant.organization_id,
        patient_id=patient_id,
        prescription_status=prescription_status,
        page=page,
        limit=limit,
    )


@router.get("/{prescription_id}", response_model=PrescriptionDetailResponse, summary="Get prescription")
async def get_prescription(prescription_id: UUID, tenant: Reader, db: DbSession) -> PrescriptionDetailResponse:
    return await PrescriptionService(db).detail(tenant.organization_id, prescription_id)


@router.patch("/{prescription_id}", response_model=PrescriptionResponse, summary="Update prescription")
async def update_prescription(
    prescription_id: UUID, data: PrescriptionUpdate, tenant: Clinician, db: DbSession
) -> PrescriptionResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await PrescriptionService(db).update(tenant.organization_id, prescription_id, doctor, data)


@router.post(
    "/{prescription_id}/sign",
    response_model=PrescriptionResponse,
    summary="Sign prescription",
    description="Signs a draft and notifies the patient by email.",
)
async def sign_prescription(
    prescription_id: UUID, request: Request, tenant: Clinician, db: DbSession
) -> PrescriptionResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await PrescriptionService(db).sign(
        tenant.organization_id, prescription_id, doctor, get_client_ip(request)
    )


@router.post("/{prescription_id}/revoke", response_model=PrescriptionResponse, summary="Revoke prescription")
async def revoke_prescription(
    prescription_id: UUID, data: RevokePrescriptionRequest, tenant: Clinician, db: DbSession
) -> PrescriptionResponse:
    doctor = await find_doctor_profile(db, tenant.user_id)
    return await PrescriptionService(db).revoke(tenant.organization_id, prescription_id, doctor, data.reason)


# ============================================================================
# Product catalog
# ============================================================================


@products_router.get("", response_model=list[CannabisProductResponse], summary="Search products")
async def search_products(
    tenant: Tenant,
    db: DbSession,
    search: Optional[str] = None,
    active_compound: Annotated[Optional[str], Query(alias="activeCompound")] = None,
) -> list[CannabisProductResponse]:
    return await ProductCatalogService(db).search(search, active_compound)


@products_router.get("/{product_id}", response_model=CannabisProductResponse, summary="Get product")
async def get_product(product_id: UUID, tenant: Tenant, db: DbSession) -> CannabisProductResponse:
    return await ProductCatalogService(db).get(product_id)
