"""
Tests for the audit log middleware.

Every successful mutation leaves an AuditLog row with secrets redacted;
failed requests and credential exchanges leave none.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from starlette.requests import Request

from app.api.middleware.audit import (
    REDACTED,
    extract_entity,
    format_entity_name,
    get_client_ip,
    sanitize_data,
)
from app.models import AuditAction, AuditLog


async def _audit_rows(session_factory) -> list[AuditLog]:
    async with session_factory() as session:
        return list(await session.scalars(select(AuditLog).order_by(AuditLog.created_at.asc())))


def _request(headers: dict[str, str], client: tuple[str, int] = ("10.0.0.9", 5000)) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": client,
        }
    )


# ============================================================================
# Helpers
# ============================================================================


def test_format_entity_name():
    assert format_entity_name("medical-records") == "MedicalRecord"
    assert format_entity_name("anvisa-reports") == "AnvisaReport"
    assert format_entity_name("blocked-slots") == "BlockedSlot"


def test_extract_entity_with_uuid_segment():
    entity_id = str(uuid4())

    assert extract_entity(f"/api/v1/patients/{entity_id}") == ("Patient", entity_id)
    assert extract_entity(f"/api/v1/consultations/{entity_id}/confirm") == ("Consultation", entity_id)


def test_extract_entity_without_uuid_segment():
    assert extract_entity("/api/v1/medical-records") == ("MedicalRecord", None)
    assert extract_entity("/api/v1/patients/pipeline-summary?x=1") == ("Patient", None)
    assert extract_entity("/api/v1/") == (None, None)


def test_sanitize_data_redacts_nested_secrets():
    data = {
        "name": "Joao",
        "cpf": "529.982.247-25",
        "credentials": {"password": "Senha123", "refreshToken": "abc"},
        "items": [{"token": "t1"}, {"token": None}],
    }

    assert sanitize_data(data) == {
        "name": "Joao",
        "cpf": REDACTED,
        "credentials": {"password": REDACTED, "refreshToken": REDACTED},
        "items": [{"token": REDACTED}, {"token": None}],
    }


def test_get_client_ip_prefers_forwarded_headers():
    assert get_client_ip(_request({"X-Forwarded-For": "200.1.2.3, 10.0.0.1"})) == "200.1.2.3"
    assert get_client_ip(_request({"X-Real-IP": "200.9.9.9"})) == "200.9.9.9"
    assert get_client_ip(_request({})) == "10.0.0.9"


# ============================================================================
# Middleware
# ============================================================================


@pytest.mark.integration
async def test_create_is_audited_with_redacted_cpf(client, clinic, session_factory):
    """POST /patients writes a CREATE row pointing at the new patient."""
    response = await client.post(
        "/api/v1/patients",
        json={"name": "Maria Oliveira", "cpf": "111.444.777-35"},
        headers=clinic.headers,
    )
    assert response.status_code == 201

    rows = await _audit_rows(session_factory)
    assert len(rows) == 1
    entry = rows[0]
    assert entry.action == AuditAction.CREATE
    assert entry.entity == "Patient"
    assert entry.entity_id == response.json()["id"]
    assert entry.user_id == clinic.owner.id
    assert entry.organization_id == clinic.organization.id
    assert entry.new_data["cpf"] == REDACTED
    assert entry.new_data["name"] == "Maria Oliveira"
    assert entry.audit_metadata["method"] == "POST"
    assert entry.audit_metadata["url"] == "/api/v1/patients"


@pytest.mark.integration
async def test_update_uses_path_id(client, clinic, patient, session_factory):
    response = await client.patch(
        f"/api/v1/patients/{patient.id}",
        json={"phone": "11999990000"},
        headers=clinic.headers,
    )
    assert response.status_code == 200

    rows = await _audit_rows(session_factory)
    assert [(r.action, r.entity, r.entity_id) for r in rows] == [
        (AuditAction.UPDATE, "Patient", str(patient.id))
    ]


@pytest.mark.integration
async def test_failed_request_not_audited(client, clinic, patient, session_factory):
    """A duplicate CPF is rejected with 409 and leaves no audit trail."""
    response = await client.post(
        "/api/v1/patients",
        json={"name": "Outro Paciente", "cpf": "529.982.247-25"},
        headers=clinic.headers,
    )
    assert response.status_code == 409

    assert await _audit_rows(session_factory) == []


@pytest.mark.integration
async def test_login_not_audited(client, clinic, session_factory):
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": clinic.owner.email, "password": "Senha123"},
    )
    assert response.status_code == 200

    assert await _audit_rows(session_factory) == []


@pytest.mark.integration
async def test_reads_not_audited(client, clinic, patient, session_factory):
    response = await client.get(f"/api/v1/patients/{patient.id}", headers=clinic.headers)
    assert response.status_code == 200

    assert await _audit_rows(session_factory) == []
