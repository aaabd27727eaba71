"""Doctor dashboard endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.dependencies import DbSession, Tenant
from app.core.database import get_session_factory
from app.schemas.dashboard import DailySummary, DashboardResponse
from app.services.dashboard import DashboardService
from app.services.doctors import require_doctor_profile

router = APIRouter()

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


@router.get(
    "",
    response_model=DashboardResponse,
    summary="Doctor dashboard",
    description="Counters, next consultations and recent patients of the caller in the selected organization.",
)
async def get_dashboard(tenant: Tenant, db: DbSession, session_factory: SessionFactory) -> DashboardResponse:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await DashboardService(session_factory).doctor_dashboard(tenant.organization_id, doctor.id)


@router.get("/weekly-summary", response_model=list[DailySummary], summary="Last 7 days")
async def weekly_summary(tenant: Tenant, db: DbSession, session_factory: SessionFactory) -> list[DailySummary]:
    doctor = await require_doctor_profile(db, tenant.user_id)
    return await DashboardService(session_factory).weekly_summary(doctor.id)
