"""Liveness and readiness schemas."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ServiceHealth(BaseModel):
    """Check result for one backing service."""

    status: HealthStatus
    response_time_ms: float | None = None
    details: dict[str, str | int | float | bool] | None = None
    error: str | None = None


class IntegrationModes(BaseModel):
    """Whether each external provider is live or answering with mocks."""

    email: Literal["resend", "mock"]
    video: Literal["daily", "mock"]
    billing: Literal["stripe", "mock"]


class LivenessResponse(BaseModel):
    status: str = Field(default="ok")
    timestamp: datetime
    version: str


class ReadinessResponse(BaseModel):
    """
    Readiness of the API.

    `services` holds database, redis and minio checks. The overall status is
    unhealthy only when the database is down.
    """

    status: HealthStatus
    timestamp: datetime
    version: str
    environment: str
    services: dict[str, ServiceHealth]
    integrations: IntegrationModes
