"""Patient self-service portal endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.dependencies import DbSession, TenantContext, require_roles
from app.models import MembershipRole
from app.schemas.patient import PatientDocumentResponse
from app.schemas.patient_portal import (
    DocumentDownloadResponse,
    PortalConsultationsResponse,
    PortalDashboardResponse,
    PortalDocumentsResponse,
    PortalPrescriptionsResponse,
    PortalProfile,
    PortalReportsResponse,
)
from app.services.patient_portal import MAX_DOCUMENT_SIZE, PatientPortalService
from app.services.storage import DocumentStorageService, get_storage_service

router = APIRouter()

PatientTenant = Annotated[TenantContext, Depends(require_roles(MembershipRole.PATIENT))]
Storage = Annotated[DocumentStorageService, Depends(get_storage_service)]


@router.get(
    "/dashboard",
    response_model=PortalDashboardResponse,
    summary="Patient dashboard",
    description="Next consultation, active prescriptions, pending documents and treatment status.",
)
async def dashboard(tenant: PatientTenant, db: DbSession) -> PortalDashboardResponse:
    return await PatientPortalService(db).dashboard(tenant.user, tenant.organization_id)


@router.get("/profile", response_model=PortalProfile, summary="Own patient profile")
async def profile(tenant: PatientTenant, db: DbSession) -> PortalProfile:
    return await PatientPortalService(db).profile(tenant.user, tenant.organization_id)


@router.get("/consultations", response_model=PortalConsultationsResponse, summary="Own consultations")
async def consultations(tenant: PatientTenant, db: DbSession) -> PortalConsultationsResponse:
    return await PatientPortalService(db).consultations(tenant.user, tenant.organization_id)


@router.get("/prescriptions", response_model=PortalPrescriptionsResponse, summary="Own prescriptions")
async def prescriptions(tenant: PatientTenant, db: DbSession) -> PortalPrescriptionsResponse:
    return await PatientPortalService(db).prescriptions(tenant.user, tenant.organization_id)


@router.get("/documents", response_model=PortalDocumentsResponse, summary="Own documents and checklist")
async def documents(tenant: PatientTenant, db: DbSession) -> PortalDocumentsResponse:
    return await PatientPortalService(db).documents(tenant.user, tenant.organization_id)


@router.post(
    "/documents",
    response_model=PatientDocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload document",
    description="JPEG, PNG or PDF up to 10 MB.",
)
async def upload_document(
    tenant: PatientTenant,
    db: DbSession,
    storage: Storage,
    file: Annotated[UploadFile, File(description="Document file")],
    document_type: Annotated[str, Form(alias="type")],
) -> PatientDocumentResponse:
    # One byte past the limit is enough to reject an oversized file
    data = await file.read(MAX_DOCUMENT_SIZE + 1)
    return await PatientPortalService(db, storage).upload_document(
        tenant.user,
        tenant.organization_id,
        document_type,
        file.filename or "documento",
        file.content_type,
        data,
    )


@router.get(
    "/documents/{document_id}/download",
    response_model=DocumentDownloadResponse,
    summary="Document download link",
    description="Presigned URL valid for one hour.",
)
async def download_document(
    document_id: UUID, tenant: PatientTenant, db: DbSession, storage: Storage
) -> DocumentDownloadResponse:
    return await PatientPortalService(db, storage).download_url(tenant.user, tenant.organization_id, document_id)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete document")
async def delete_document(document_id: UUID, tenant: PatientTenant, db: DbSession, storage: Storage) -> None:
    await PatientPortalService(db, storage).delete_document(tenant.user, tenant.organization_id, document_id)


@router.get("/anvisa-reports", response_model=PortalReportsResponse, summary="Own ANVISA reports")
async def anvisa_reports(tenant: PatientTenant, db: DbSession) -> PortalReportsResponse:
    return await PatientPortalService(db).anvisa_reports(tenant.user, tenant.organization_id)
