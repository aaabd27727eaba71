"""Doctor availability and slot endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import DbSession, TenantContext, require_roles
from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK
from app.models import MembershipRole
from app.schemas.availability import (
    AvailabilityCreate,
    AvailabilityResponse,
    AvailabilityUpdate,
    BlockedSlotCreate,
    BlockedSlotResponse,
    TimeSlot,
)
from app.services.availability import AvailabilityService
from app.services.doctors import require_doctor_profile

router = APIRouter()

Clinician = Annotated[TenantContext, Depends(require_roles(*CLINICAL_STAFF))]
Staff = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK))]
Reader = Annotated[TenantContext, Depends(require_roles(*FRONT_DESK, MembershipRole.VIEWER))]


@router.post(
    "",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add weekly availability",
    description="Windows of the same weekday may not overlap.",
)
async def create_availability(data: AvailabilityCreate, tenant: Clinician, db: DbSession) -> AvailabilityResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).create(doctor, data)


@router.get("/config", response_model=list[AvailabilityResponse], summary="Own availability")
async def own_config(tenant: Clinician, db: DbSession) -> list[AvailabilityResponse]:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).list_for_doctor(doctor.id)


@router.get("/config/{doctor_id}", response_model=list[AvailabilityResponse], summary="Doctor availability")
async def doctor_config(doctor_id: UUID, tenant: Staff, db: DbSession) -> list[AvailabilityResponse]:
    return await AvailabilityService(db).list_for_doctor(doctor_id)


@router.get(
    "/slots/{doctor_id}",
    response_model=list[TimeSlot],
    summary="Bookable slots",
    description="Slots between startDate and endDate (at most 30 days) in the clinic timezone.",
)
async def slots(
    doctor_id: UUID,
    tenant: Reader,
    db: DbSession,
    start_date: Annotated[date, Query(alias="startDate")],
    end_date: Annotated[date, Query(alias="endDate")],
) -> list[TimeSlot]:
    return await AvailabilityService(db).available_slots(doctor_id, start_date, end_date)


@router.post(
    "/blocked-slots",
    response_model=BlockedSlotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Block a time range",
)
async def create_blocked_slot(data: BlockedSlotCreate, tenant: Clinician, db: DbSession) -> BlockedSlotResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).create_blocked_slot(doctor, data)


@router.get("/blocked-slots", response_model=list[BlockedSlotResponse], summary="Upcoming blocked ranges")
async def list_blocked_slots(tenant: Clinician, db: DbSession) -> list[BlockedSlotResponse]:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).list_blocked_slots(doctor.id)


@router.delete("/blocked-slots/{blocked_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Unblock")
async def delete_blocked_slot(blocked_id: UUID, tenant: Clinician, db: DbSession) -> None:
    doctor = await require_doctor_profile(db, tenant.user_id)
    await AvailabilityService(db).delete_blocked_slot(blocked_id, doctor)


@router.patch("/{availability_id}", response_model=AvailabilityResponse, summary="Update availability")
async def update_availability(
    availability_id: UUID, data: AvailabilityUpdate, tenant: Clinician, db: DbSession
) -> AvailabilityResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).update(availability_id, doctor, data)


@router.delete(
    "/{availability_id}",
    response_model=AvailabilityResponse,
    summary="Deactivate availability",
)
async def delete_availability(availability_id: UUID, tenant: Clinician, db: DbSession) -> AvailabilityResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await AvailabilityService(db).deactivate(availability_id, doctor)
