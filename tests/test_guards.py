"""
Access control tests: authentication, tenant resolution, role hierarchy,
subscription gate and super admin restriction.
"""

from datetime import timedelta

import pytest

from app.api.dependencies.roles import CLINICAL_STAFF, FRONT_DESK, MANAGERS, has_role
from app.core.security import create_temp_token
from app.models import MembershipRole, Subscription, SubscriptionStatus
from app.models.base import utcnow

pytestmark = pytest.mark.security


# ============================================================================
# Role hierarchy
# ============================================================================


def test_higher_roles_inherit_lower_permissions():
    assert has_role(MembershipRole.OWNER, (MembershipRole.DOCTOR,))
    assert has_role(MembershipRole.ADMIN, (MembershipRole.SECRETARY,))
    assert has_role(MembershipRole.DOCTOR, CLINICAL_STAFF)
    assert not has_role(MembershipRole.SECRETARY, CLINICAL_STAFF)
    assert not has_role(MembershipRole.VIEWER, FRONT_DESK)
    assert not has_role(MembershipRole.DOCTOR, MANAGERS)


def test_roles_outside_hierarchy_match_exactly():
    assert has_role(MembershipRole.PATIENT, (MembershipRole.PATIENT,))
    assert not has_role(MembershipRole.PATIENT, (MembershipRole.VIEWER,))
    assert not has_role(MembershipRole.SUPER_ADMIN, (MembershipRole.VIEWER,))
    assert not has_role(MembershipRole.OWNER, (MembershipRole.PATIENT,))


# ============================================================================
# Authentication
# ============================================================================


async def test_missing_token_is_401(client, clinic):
    response = await client.get("/api/v1/patients", headers={"x-org-id": str(clinic.organization.id)})

    assert response.status_code == 401
    body = response.json()
    assert body["statusCode"] == 401
    assert body["message"] == "Não autenticado"
    assert body["path"] == "/api/v1/patients"
    assert body["error"] == "Unauthorized"
    assert "timestamp" in body


async def test_temp_token_cannot_call_api(client, clinic):
    token = create_temp_token(str(clinic.owner.id), clinic.owner.email)

    response = await client.get(
        "/api/v1/patients",
        headers={"Authorization": f"Bearer {token}", "x-org-id": str(clinic.organization.id)},
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Token inválido"


async def test_inactive_user_rejected(client, clinic, db_session):
    clinic.owner.is_active = False
    await db_session.commit()

    response = await client.get("/api/v1/users/me", headers=clinic.headers)

    assert response.status_code == 401


# ============================================================================
# Tenant resolution
# ============================================================================


async def test_missing_organization_is_401(client, clinic, headers_for):
    response = await client.get("/api/v1/patients", headers=headers_for(clinic.owner))

    assert response.status_code == 401
    assert "x-org-id" in response.json()["message"]


async def test_organization_from_json_body(client, clinic, headers_for):
    """organizationId in the body selects the tenant when the header is absent."""
    response = await client.post(
        "/api/v1/patients",
        json={
            "organizationId": str(clinic.organization.id),
            "name": "Paciente Corpo",
            "cpf": "111.444.777-35",
        },
        headers=headers_for(clinic.owner),
    )

    assert response.status_code == 201
    assert "organizationId" not in response.json()


async def test_foreign_organization_is_403(client, make_clinic):
    clinic_a = await make_clinic("Clinica A")
    clinic_b = await make_clinic("Clinica B")

    response = await client.get(
        "/api/v1/patients",
        headers={**clinic_a.headers, "x-org-id": str(clinic_b.organization.id)},
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Você não tem acesso a esta organização"


async def test_malformed_organization_id_is_403(client, clinic):
    response = await client.get("/api/v1/patients", headers={**clinic.headers, "x-org-id": "not-a-uuid"})

    assert response.status_code == 403


async def test_inactive_membership_is_403(client, clinic, db_session):
    clinic.membership.is_active = False
    await db_session.commit()

    response = await client.get("/api/v1/patients", headers=clinic.headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Sua participação nesta organização está inativa"


# ============================================================================
# Roles on routes
# ============================================================================


async def test_viewer_reads_but_cannot_write(client, clinic, make_user, add_member, headers_for):
    viewer, _ = await make_user("viewer@clinicaverde.com.br", name="Visualizador")
    await add_member(viewer, clinic.organization, MembershipRole.VIEWER)
    headers = headers_for(viewer, clinic.organization)

    assert (await client.get("/api/v1/patients", headers=headers)).status_code == 200

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=headers,
    )
    assert response.status_code == 403
    assert response.json()["message"].startswith("Acesso negado. Roles permitidas:")


async def test_secretary_can_register_patients(client, clinic, make_user, add_member, headers_for):
    secretary, _ = await make_user("secretaria@clinicaverde.com.br", name="Secretaria")
    await add_member(secretary, clinic.organization, MembershipRole.SECRETARY)

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=headers_for(secretary, clinic.organization),
    )

    assert response.status_code == 201


async def test_patient_role_has_no_staff_access(client, clinic, make_user, add_member, headers_for):
    portal_user, _ = await make_user("paciente@pacientes.com.br", name="Paciente Portal")
    await add_member(portal_user, clinic.organization, MembershipRole.PATIENT)

    response = await client.get("/api/v1/patients", headers=headers_for(portal_user, clinic.organization))

    assert response.status_code == 403


# ============================================================================
# Subscription gate
# ============================================================================


async def test_past_due_is_read_only(client, make_clinic):
    clinic = await make_clinic(subscription_status=SubscriptionStatus.PAST_DUE)

    assert (await client.get("/api/v1/patients", headers=clinic.headers)).status_code == 200

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=clinic.headers,
    )
    assert response.status_code == 403
    assert response.json()["message"].startswith("Assinatura vencida")


async def test_canceled_within_grace_is_read_only(client, make_clinic):
    clinic = await make_clinic(
        subscription_status=SubscriptionStatus.CANCELED,
        canceled_at=utcnow() - timedelta(days=10),
    )

    assert (await client.get("/api/v1/patients", headers=clinic.headers)).status_code == 200

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=clinic.headers,
    )
    assert response.status_code == 403


async def test_canceled_after_grace_blocks_reads(client, make_clinic):
    clinic = await make_clinic(
        subscription_status=SubscriptionStatus.CANCELED,
        canceled_at=utcnow() - timedelta(days=31),
    )

    response = await client.get("/api/v1/patients", headers=clinic.headers)

    assert response.status_code == 403
    assert response.json()["message"].startswith("Assinatura cancelada")


async def test_expired_trial_becomes_past_due(client, make_clinic, fetch):
    clinic = await make_clinic(
        subscription_status=SubscriptionStatus.TRIAL,
        trial_ends_at=utcnow() - timedelta(hours=1),
    )

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=clinic.headers,
    )
    assert response.status_code == 403
    assert response.json()["message"].startswith("Período de trial expirado")

    subscription = await fetch(Subscription, clinic.subscription.id)
    assert subscription.status == SubscriptionStatus.PAST_DUE

    # Reads keep working while delinquent
    assert (await client.get("/api/v1/patients", headers=clinic.headers)).status_code == 200


async def test_active_trial_allows_writes(client, make_clinic):
    clinic = await make_clinic(
        subscription_status=SubscriptionStatus.TRIAL,
        trial_ends_at=utcnow() + timedelta(days=3),
    )

    response = await client.post(
        "/api/v1/patients",
        json={"name": "Novo Paciente", "cpf": "111.444.777-35"},
        headers=clinic.headers,
    )

    assert response.status_code == 201


async def test_no_subscription_is_403(client, clinic, db_session):
    await db_session.delete(clinic.subscription)
    await db_session.commit()

    response = await client.get("/api/v1/patients", headers=clinic.headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Organização sem assinatura ativa"


# ============================================================================
# Super admin
# ============================================================================


async def test_owner_is_not_super_admin(client, clinic):
    response = await client.get("/api/v1/super-admin/dashboard", headers=clinic.headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Acesso restrito a Super Admin"


async def test_super_admin_membership_grants_access(client, clinic, make_user, add_member, headers_for):
    operator, _ = await make_user("ops@canneo.com.br", name="Operador")
    await add_member(operator, clinic.organization, MembershipRole.SUPER_ADMIN)

    response = await client.get("/api/v1/super-admin/dashboard", headers=headers_for(operator))

    assert response.status_code == 200
