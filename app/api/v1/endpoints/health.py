"""Liveness and readiness endpoints."""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import get_session_factory
from app.schemas.health import HealthStatus, LivenessResponse, ReadinessResponse
from app.services.health import HealthCheckService

router = APIRouter()


@router.get(
    "/health",
    response_model=LivenessResponse,
    summary="Liveness check",
    tags=["Health"],
)
async def health() -> LivenessResponse:
    return LivenessResponse(timestamp=datetime.now(timezone.utc), version=settings.APP_VERSION)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks PostgreSQL, Redis and MinIO. Responds 503 when the database is unreachable.",
    tags=["Health"],
)
async def ready(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> JSONResponse:
    readiness = await HealthCheckService(session_factory).perform_readiness_check()
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if readiness.status == HealthStatus.UNHEALTHY
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=readiness.model_dump(mode="json"))
