"""Consultation scheduling and lifecycle endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import DbSession, Tenant, TenantContext, require_roles, require_subscription
from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK
from app.models import ConsultationStatus, MembershipRole
from app.schemas.common import UTCDatetime
from app.schemas.consultation import (
    CancelConsultationRequest,
    ConsultationCreate,
    ConsultationListResponse,
    ConsultationResponse,
    ConsultationUpdate,
    VideoRoomInfoResponse,
    VideoTokenResponse,
)
from app.services.consultations import UPCOMING_LIMIT, ConsultationService
from app.services.doctors import find_doctor_profile
from app.services.video import VideoService

router = APIRouter()

Staff = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]
Clinician = Annotated[TenantContext, Depends(require_roles(*CLINICAL_STAFF))]

Subscribed = [Depends(require_subscription)]


async def _default_doctor_id(tenant: TenantContext, db: DbSession, doctor_id: Optional[UUID]) -> Optional[UUID]:
    if doctor_id is not None:
        return doctor_id
    profile = await find_doctor_profile(db, tenant.user_id)
    return profile.id if profile else None


@router.post(
    "",
    response_model=ConsultationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=Subscribed,
    summary="Schedule consultation",
    description="Rejects slots within the duration window of another active consultation of the same doctor.",
)
async def create_consultation(data: ConsultationCreate, tenant: Staff, db: DbSession) -> ConsultationResponse:
    return await ConsultationService(db).create(tenant.organization_id, data)


@router.get("", response_model=ConsultationListResponse, dependencies=Subscribed, summary="List consultations")
async def list_consultations(
    tenant: Reader,
    db: DbSession,
    status_filter: Annotated[Optional[ConsultationStatus], Query(alias="status")] = None,
    doctor_id: Annotated[Optional[UUID], Query(alias="doctorId")] = None,
    patient_id: Annotated[Optional[UUID], Query(alias="patientId")] = None,
    start_date: Annotated[Optional[UTCDatetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[UTCDatetime], Query(alias="endDate")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ConsultationListResponse:
    return await ConsultationService(db).list_consultations(
        tenant.organization_id,
        status_filter=status_filter,
        doctor_id=doctor_id,
        patient_id=patient_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


@router.get(
    "/today",
    response_model=list[ConsultationResponse],
    dependencies=Subscribed,
    summary="Today's consultations",
    description="Defaults to the caller's own agenda when doctorId is omitted.",
)
async def today(
    tenant: Staff,
    db: DbSession,
    doctor_id: Annotated[Optional[UUID], Query(alias="doctorId")] = None,
) -> list[ConsultationResponse]:
    doctor_id = await _default_doctor_id(tenant, db, doctor_id)
    return await ConsultationService(db).today(tenant.organization_id, doctor_id)


@router.get("/upcoming", response_model=list[ConsultationResponse], dependencies=Subscribed, summary="Upcoming")
async def upcoming(
    tenant: Staff,
    db: DbSession,
    doctor_id: Annotated[Optional[UUID], Query(alias="doctorId")] = None,
    limit: Annotated[int, Query(ge=1, le=50)] = UPCOMING_LIMIT,
) -> list[ConsultationResponse]:
    doctor_id = await _default_doctor_id(tenant, db, doctor_id)
    return await ConsultationService(db).upcoming(tenant.organization_id, doctor_id, limit)


@router.get(
    "/{consultation_id}", response_model=ConsultationResponse, dependencies=Subscribed, summary="Get consultation"
)
async def get_consultation(consultation_id: UUID, tenant: Reader, db: DbSession) -> ConsultationResponse:
    consultation = await ConsultationService(db).get_consultation(tenant.organization_id, consultation_id)
    return ConsultationResponse.model_validate(consultation)


@router.patch(
    "/{consultation_id}", response_model=ConsultationResponse, dependencies=Subscribed, summary="Update consultation"
)
async def update_consultation(
    consultation_id: UUID, data: ConsultationUpdate, tenant: Staff, db: DbSession
) -> ConsultationResponse:
    return await ConsultationService(db).update(tenant.organization_id, consultation_id, data)


@router.patch("/{consultation_id}/confirm", response_model=ConsultationResponse, dependencies=Subscribed)
async def confirm(consultation_id: UUID, tenant: Staff, db: DbSession) -> ConsultationResponse:
    return await ConsultationService(db).confirm(tenant.organization_id, consultation_id)


@router.patch("/{consultation_id}/cancel", response_model=ConsultationResponse, dependencies=Subscribed)
async def cancel(
    consultation_id: UUID,
    tenant: Staff,
    db: DbSession,
    data: Optional[CancelConsultationRequest] = None,
) -> ConsultationResponse:
    reason = data.reason if data else None
    return await ConsultationService(db).cancel(tenant.organization_id, consultation_id, reason)


@router.patch(
    "/{consultation_id}/start",
    response_model=ConsultationResponse,
    dependencies=Subscribed,
    description="Only the assigned doctor can start the consultation.",
)
async def start(consultation_id: UUID, tenant: Clinician, db: DbSession) -> ConsultationResponse:
    return await ConsultationService(db).start(tenant.organization_id, consultation_id, tenant.user_id)


@router.patch("/{consultation_id}/end", response_model=ConsultationResponse, dependencies=Subscribed)
async def end(consultation_id: UUID, tenant: Clinician, db: DbSession) -> ConsultationResponse:
    return await ConsultationService(db).end(tenant.organization_id, consultation_id, tenant.user_id)


@router.patch("/{consultation_id}/no-show", response_model=ConsultationResponse, dependencies=Subscribed)
async def no_show(consultation_id: UUID, tenant: Staff, db: DbSession) -> ConsultationResponse:
    return await ConsultationService(db).mark_no_show(tenant.organization_id, consultation_id)


# ============================================================================
# Video
# ============================================================================


@router.post(
    "/{consultation_id}/video/token",
    response_model=VideoTokenResponse,
    summary="Video meeting token",
    description="Creates the Daily.co room on first use. The doctor joins as room owner.",
)
async def video_token(consultation_id: UUID, tenant: Tenant, db: DbSession) -> VideoTokenResponse:
    return await VideoService(db).get_token(tenant, consultation_id)


@router.get("/{consultation_id}/video/room-info", response_model=VideoRoomInfoResponse, summary="Video room state")
async def video_room_info(consultation_id: UUID, tenant: Tenant, db: DbSession) -> VideoRoomInfoResponse:
    return await VideoService(db).get_room_info(tenant, consultation_id)
