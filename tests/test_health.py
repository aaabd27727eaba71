"""Liveness and readiness check tests."""

import pytest
from urllib3.exceptions import MaxRetryError

import app.main as main_module
from app.core.config import settings
from app.schemas.health import HealthStatus, ServiceHealth
from app.services.health import HealthCheckService, integration_modes, overall_status


async def _healthy(self):
    return {"source": "fake"}


async def _down(self):
    raise ConnectionError("connection refused")


def test_overall_status():
    up = ServiceHealth(status=HealthStatus.HEALTHY)
    down = ServiceHealth(status=HealthStatus.UNHEALTHY)

    assert overall_status({"database": up, "redis": up, "minio": up}) == HealthStatus.HEALTHY
    assert overall_status({"database": up, "redis": down, "minio": up}) == HealthStatus.DEGRADED
    assert overall_status({"database": down, "redis": up, "minio": up}) == HealthStatus.UNHEALTHY


def test_integrations_default_to_mock():
    assert integration_modes().model_dump() == {"email": "mock", "video": "mock", "billing": "mock"}


async def test_liveness(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["version"] == settings.APP_VERSION


async def test_readiness_healthy(client, monkeypatch):
    monkeypatch.setattr(HealthCheckService, "_redis", _healthy)
    monkeypatch.setattr(HealthCheckService, "_minio", _healthy)

    response = await client.get("/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"]["database"]["status"] == "healthy"
    assert body["services"]["redis"]["details"] == {"source": "fake"}


@pytest.mark.parametrize("service", ["_redis", "_minio"])
async def test_readiness_degraded_without_cache_or_storage(client, monkeypatch, service):
    monkeypatch.setattr(HealthCheckService, "_redis", _healthy)
    monkeypatch.setattr(HealthCheckService, "_minio", _healthy)
    monkeypatch.setattr(HealthCheckService, service, _down)

    response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


async def test_readiness_unhealthy_without_database(client, monkeypatch):
    monkeypatch.setattr(HealthCheckService, "_database", _down)
    monkeypatch.setattr(HealthCheckService, "_redis", _healthy)
    monkeypatch.setattr(HealthCheckService, "_minio", _healthy)

    response = await client.get("/ready")

    assert response.status_code == 503
    assert response.json()["services"]["database"]["error"] == "connection refused"


class UnreachableStorage:
    async def ensure_bucket_exists(self) -> None:
        raise MaxRetryError(None, "/canneo-documents", "Connection refused")


async def test_startup_survives_unreachable_storage(session_factory, monkeypatch):
    monkeypatch.setattr(main_module, "get_storage_service", UnreachableStorage)
    monkeypatch.setattr(main_module.app.state, "session_factory", session_factory)

    async with main_module.lifespan(main_module.app):
        pass
