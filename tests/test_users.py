"""Own account tests: profile, doctor profile, password and MFA flag."""

from app.core.security import verify_password
from app.models import DoctorProfile, User


async def test_profile_with_memberships(client, clinic, headers_for):
    response = await client.get("/api/v1/users/me", headers=headers_for(clinic.owner))

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == clinic.owner.email
    assert body["doctorProfile"]["crm"] == clinic.doctor.crm
    assert [m["organization"]["id"] for m in body["memberships"]] == [str(clinic.organization.id)]
    assert body["memberships"][0]["role"] == "OWNER"


async def test_update_profile(client, clinic, headers_for, fetch):
    response = await client.patch(
        "/api/v1/users/me",
        json={"name": "Dra. Ana Souza Lima", "phone": "11999990000"},
        headers=headers_for(clinic.owner),
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Dra. Ana Souza Lima"
    assert (await fetch(User, clinic.owner.id)).phone == "11999990000"


async def test_update_profile_rejects_unknown_fields(client, clinic, headers_for):
    response = await client.patch("/api/v1/users/me", json={"email": "outro@x.com"}, headers=headers_for(clinic.owner))

    assert response.status_code == 400


async def test_update_doctor_profile(client, clinic, headers_for, fetch):
    response = await client.patch(
        "/api/v1/users/me/doctor-profile",
        json={"specialty": "Neurologia", "bio": "Dor cronica e epilepsia"},
        headers=headers_for(clinic.owner),
    )

    assert response.status_code == 200
    assert response.json()["specialty"] == "Neurologia"
    assert (await fetch(DoctorProfile, clinic.doctor.id)).bio == "Dor cronica e epilepsia"


async def test_doctor_profile_of_non_doctor_is_404(client, make_user, headers_for):
    user, _ = await make_user("secretaria@clinicaverde.com.br", name="Secretaria")

    response = await client.patch(
        "/api/v1/users/me/doctor-profile", json={"specialty": "Clinica"}, headers=headers_for(user)
    )

    assert response.status_code == 404


async def test_change_password(client, clinic, headers_for, fetch):
    response = await client.post(
        "/api/v1/users/me/change-password",
        json={"currentPassword": "Senha123", "newPassword": "NovaSenha456"},
        headers=headers_for(clinic.owner),
    )

    assert response.status_code == 200
    assert verify_password("NovaSenha456", (await fetch(User, clinic.owner.id)).password_hash)


async def test_change_password_checks_current(client, clinic, headers_for):
    wrong = await client.post(
        "/api/v1/users/me/change-password",
        json={"currentPassword": "Errada123", "newPassword": "NovaSenha456"},
        headers=headers_for(clinic.owner),
    )
    weak = await client.post(
        "/api/v1/users/me/change-password",
        json={"currentPassword": "Senha123", "newPassword": "fraca"},
        headers=headers_for(clinic.owner),
    )

    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Senha atual incorreta"
    assert weak.status_code == 400


async def test_toggle_mfa(client, clinic, headers_for):
    headers = headers_for(clinic.owner)

    enabled = await client.post("/api/v1/users/me/mfa/enable", headers=headers)
    assert enabled.json() == {"mfaEnabled": True}

    disabled = await client.post("/api/v1/users/me/mfa/disable", headers=headers)
    assert disabled.json() == {"mfaEnabled": False}
