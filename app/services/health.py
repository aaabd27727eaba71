"""Readiness checks for the database, Redis and MinIO."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import async_session_maker
from app.schemas.health import HealthStatus, IntegrationModes, ReadinessResponse, ServiceHealth
from app.services.storage import get_storage_service

logger = logging.getLogger(__name__)

CheckDetails = Optional[dict[str, str | int | float | bool]]


def integration_modes() -> IntegrationModes:
    """Providers without an API key answer with mocks."""
    return IntegrationModes(
        email="resend" if settings.RESEND_API_KEY else "mock",
        video="daily" if settings.DAILY_API_KEY else "mock",
        billing="stripe" if settings.STRIPE_SECRET_KEY else "mock",
    )


class HealthCheckService:
    """Runs each check with its own timing and folds them into one status."""

    def __init__(
        self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    ) -> None:
        self.session_factory = session_factory or async_session_maker

    async def _check(self, name: str, check: Callable[[], Awaitable[CheckDetails]]) -> ServiceHealth:
        start = time.perf_counter()
        try:
            details = await check()
        except Exception as e:
            logger.error(f"{name} health check failed: {e}")
            return ServiceHealth(
                status=HealthStatus.UNHEALTHY,
                response_time_ms=(time.perf_counter() - start) * 1000,
                error=str(e),
            )
        return ServiceHealth(
            status=HealthStatus.HEALTHY,
            response_time_ms=(time.perf_counter() - start) * 1000,
            details=details,
        )

    async def _database(self) -> CheckDetails:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return None

    async def _redis(self) -> CheckDetails:
        client = aioredis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        try:
            await client.ping()
        finally:
            await client.aclose()
        return {"queue": settings.ARQ_QUEUE_NAME, "queueEnabled": settings.ARQ_ENABLED}

    async def _minio(self) -> CheckDetails:
        buckets = await get_storage_service().bucket_count()
        return {"buckets": buckets or 0, "bucket": settings.MINIO_BUCKET_DOCUMENTS}

    async def check_database(self) -> ServiceHealth:
        return await self._check("Database", self._database)

    async def check_redis(self) -> ServiceHealth:
        return await self._check("Redis", self._redis)

    async def check_minio(self) -> ServiceHealth:
        return await self._check("MinIO", self._minio)

    async def perform_readiness_check(self) -> ReadinessResponse:
        """
        Check every dependency in parallel.

        Database down is UNHEALTHY; Redis or MinIO down is DEGRADED.
        """
        database, redis_health, minio = await asyncio.gather(
            self.check_database(),
            self.check_redis(),
            self.check_minio(),
        )
        services = {"database": database, "redis": redis_health, "minio": minio}

        return ReadinessResponse(
            status=overall_status(services),
            timestamp=datetime.now(timezone.utc),
            version=settings.APP_VERSION,
            environment=settings.APP_ENV,
            services=services,
            integrations=integration_modes(),
        )


def overall_status(services: dict[str, ServiceHealth]) -> HealthStatus:
    if services["database"].status == HealthStatus.UNHEALTHY:
        return HealthStatus.UNHEALTHY
    if any(service.status == HealthStatus.UNHEALTHY for service in services.values()):
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
