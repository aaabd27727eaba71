"""Super-admin back office tests."""

from uuid import uuid4

import pytest
import pytest_asyncio

from app.models import AuditAction, AuditLog, ConsultationStatus, MembershipRole, SubscriptionStatus


@pytest_asyncio.fixture
async def admin_headers(clinic, make_user, add_member, headers_for):
    admin, _ = await make_user("root@canneo.com.br", name="Plataforma")
    await add_member(admin, clinic.organization, MembershipRole.SUPER_ADMIN)
    return headers_for(admin)


# ============================================================================
# Access
# ============================================================================


@pytest.mark.security
async def test_owner_is_not_super_admin(client, clinic):
    response = await client.get("/api/v1/super-admin/dashboard", headers=clinic.headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Acesso restrito a Super Admin"


async def test_inactive_super_admin_membership_is_rejected(client, clinic, make_user, add_member, headers_for):
    former, _ = await make_user("antigo@canneo.com.br", name="Antigo")
    await add_member(former, clinic.organization, MembershipRole.SUPER_ADMIN, is_active=False)

    response = await client.get("/api/v1/super-admin/dashboard", headers=headers_for(former))

    assert response.status_code == 403


# ============================================================================
# Platform dashboard
# ============================================================================


async def test_platform_dashboard(client, clinic, patient, make_clinic, make_consultation, admin_headers):
    await make_clinic(name="Clinica Azul", subscription_status=SubscriptionStatus.TRIAL)
    await make_consultation(clinic.organization, patient, clinic.doctor)
    await make_consultation(clinic.organization, patient, clinic.doctor, status=ConsultationStatus.CANCELED)

    response = await client.get("/api/v1/super-admin/dashboard", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["totalDoctors"] == 2
    assert body["totalPatients"] == 1
    assert body["totalConsultations"] == 2
    assert body["totalOrganizations"] == 2
    assert body["subscriptions"] == {"active": 1, "trial": 1}
    assert body["consultationsByStatus"] == {"SCHEDULED": 1, "CANCELED": 1}
    assert body["estimatedMonthlyRevenue"] == 149.0


# ============================================================================
# Doctors
# ============================================================================


async def test_list_doctors_with_counts(client, clinic, patient, make_consultation, admin_headers):
    await make_consultation(clinic.organization, patient, clinic.doctor)

    response = await client.get("/api/v1/super-admin/doctors", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    (doctor,) = body["doctors"]
    assert doctor["crm"] == clinic.doctor.crm
    assert doctor["user"]["email"] == clinic.owner.email
    assert doctor["stats"]["consultations"] == 1
    assert [m["role"] for m in doctor["memberships"]] == ["OWNER"]


async def test_list_doctors_search_and_status(client, clinic, make_user, add_member, admin_headers):
    inactive, _ = await make_user("sem.vinculo@clinicaverde.com.br", name="Dr. Sem Vinculo", crm="999999")
    await add_member(inactive, clinic.organization, MembershipRole.DOCTOR, is_active=False)

    searched = await client.get("/api/v1/super-admin/doctors", params={"search": "999999"}, headers=admin_headers)
    assert [d["user"]["name"] for d in searched.json()["doctors"]] == ["Dr. Sem Vinculo"]

    active = await client.get("/api/v1/super-admin/doctors", params={"status": "active"}, headers=admin_headers)
    assert [d["crm"] for d in active.json()["doctors"]] == [clinic.doctor.crm]

    only_inactive = await client.get(
        "/api/v1/super-admin/doctors", params={"status": "inactive"}, headers=admin_headers
    )
    assert [d["crm"] for d in only_inactive.json()["doctors"]] == ["999999"]


async def test_doctor_detail(client, clinic, patient, make_consultation, admin_headers):
    await make_consultation(clinic.organization, patient, clinic.doctor, status=ConsultationStatus.COMPLETED)

    response = await client.get(f"/api/v1/super-admin/doctors/{clinic.doctor.id}", headers=admin_headers)

    assert response.status_code == 200
    stats = response.json()["detailStats"]
    assert stats["totalConsultations"] == 1
    assert stats["completedConsultations"] == 1
    assert stats["totalPatients"] == 1
    assert stats["consultationsByStatus"] == {"COMPLETED": 1}
    assert response.json()["memberships"][0]["subscription"]["status"] == "ACTIVE"


async def test_unknown_doctor_is_404(client, admin_headers):
    response = await client.get(f"/api/v1/super-admin/doctors/{uuid4()}", headers=admin_headers)

    assert response.status_code == 404


async def test_doctor_consultations_filter(client, clinic, patient, make_consultation, admin_headers):
    await make_consultation(clinic.organization, patient, clinic.doctor)
    await make_consultation(clinic.organization, patient, clinic.doctor, status=ConsultationStatus.NO_SHOW)

    response = await client.get(
        f"/api/v1/super-admin/doctors/{clinic.doctor.id}/consultations",
        params={"status": "NO_SHOW"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["pagination"]["total"] == 1


# ============================================================================
# Organizations and patients
# ============================================================================


async def test_list_organizations(client, clinic, patient, admin_headers):
    response = await client.get("/api/v1/super-admin/organizations", headers=admin_headers)

    assert response.status_code == 200
    (organization,) = response.json()["organizations"]
    assert organization["name"] == clinic.organization.name
    # Owner plus the super admin
    assert organization["stats"] == {"members": 2, "patients": 1, "consultations": 0}
    assert organization["currentSubscription"]["status"] == "ACTIVE"


async def test_list_patients_pagination(client, clinic, make_patient, admin_headers):
    await make_patient(clinic.organization, name="Paciente Um", cpf="529.982.247-25")
    await make_patient(clinic.organization, name="Paciente Dois", cpf="111.444.777-35")
    await make_patient(clinic.organization, name="Paciente Tres", cpf="123.456.789-09")

    response = await client.get("/api/v1/super-admin/patients", params={"limit": 2}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert len(body["patients"]) == 2
    assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}
    assert body["patients"][0]["organization"]["id"] == str(clinic.organization.id)


async def test_patient_detail(client, clinic, patient, make_consultation, admin_headers):
    await make_consultation(clinic.organization, patient, clinic.doctor)

    response = await client.get(f"/api/v1/super-admin/patients/{patient.id}", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["cpfLastFour"] == "4725"
    assert len(body["consultations"]) == 1
    assert body["detailStats"]["totalConsultations"] == 1


# ============================================================================
# Audit trail
# ============================================================================


async def test_audit_log_filters(client, clinic, db_session, admin_headers):
    db_session.add_all(
        [
            AuditLog(
                organization_id=clinic.organization.id,
                user_id=clinic.owner.id,
                action=AuditAction.CREATE,
                entity="patients",
                entity_id=str(uuid4()),
            ),
            AuditLog(
                organization_id=clinic.organization.id,
                user_id=clinic.owner.id,
                action=AuditAction.SIGN,
                entity="prescriptions",
                entity_id=str(uuid4()),
            ),
        ]
    )
    await db_session.commit()

    everything = await client.get("/api/v1/super-admin/audit-logs", headers=admin_headers)
    assert everything.json()["pagination"]["total"] == 2

    signed = await client.get("/api/v1/super-admin/audit-logs", params={"action": "SIGN"}, headers=admin_headers)
    (log,) = signed.json()["logs"]
    assert log["entity"] == "prescriptions"
    assert log["user"]["email"] == clinic.owner.email
