"""
Clinical document tests: medical records, prescriptions and ANVISA reports,
from draft to signature.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy import select

from app.models import (
    AuditAction,
    AuditLog,
    CannabisProduct,
    ConsultationStatus,
    DocumentType,
    MembershipRole,
    Patient,
    PatientDocument,
    PipelineStatus,
)

CLINICAL_DATA = {
    "chiefComplaint": "Dor cronica lombar",
    "historyOfPresentIllness": "Dor ha 5 anos sem resposta a AINEs",
    "pastMedicalHistory": "Fisioterapia e opioides fracos",
    "primaryDiagnosis": {"icd10Code": "M54.5", "description": "Dor lombar baixa"},
    "cannabisRecommendation": {
        "productType": "Oleo",
        "concentration": "CBD 200mg/ml",
        "administration": "Sublingual",
        "startingDose": "0.25ml 2x ao dia",
        "titration": "Aumentar 0.1ml por semana",
        "duration": "Reducao da dor em 3 meses",
    },
}


def _prescription_payload(record_id: str, **fields: Any) -> dict[str, Any]:
    payload = {
        "medicalRecordId": record_id,
        "productName": "Canabidiol Verde 200mg/ml",
        "concentration": "200mg/ml",
        "dosage": "0.25ml 2x ao dia",
        "quantity": "1 frasco de 30ml",
        "validUntil": (date.today() + timedelta(days=180)).isoformat(),
    }
    payload.update(fields)
    return payload


@pytest_asyncio.fixture
async def consultation(clinic, patient, make_consultation):
    return await make_consultation(
        clinic.organization, patient, clinic.doctor, status=ConsultationStatus.COMPLETED
    )


@pytest_asyncio.fixture
async def record(client, clinic, consultation) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/medical-records",
        json={
            "consultationId": str(consultation.id),
            "templateType": "PRIMEIRA_CONSULTA",
            "clinicalData": CLINICAL_DATA,
        },
        headers=clinic.headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest_asyncio.fixture
async def product(db_session) -> CannabisProduct:
    product = CannabisProduct(
        name="Canabidiol Verde 200mg/ml",
        manufacturer="Verde Pharma",
        active_compound="CBD",
        concentration="200mg/ml",
        cbd_percentage=Decimal("20.00"),
        presentation="Oleo",
        volume="30ml",
        administration_route="Sublingual",
    )
    db_session.add(product)
    await db_session.commit()
    return product


async def _audit_actions(session_factory, entity: str) -> list[AuditAction]:
    async with session_factory() as session:
        rows = await session.scalars(select(AuditLog.action).where(AuditLog.entity == entity))
        return list(rows)


# ============================================================================
# Medical records
# ============================================================================


async def test_template_structure(client, clinic):
    response = await client.get("/api/v1/medical-records/templates/RETORNO", headers=clinic.headers)

    assert response.status_code == 200
    sections = response.json()["sections"]
    assert sections[0]["id"] == "treatment_response"
    assert "painLevel" in sections[1]["fields"]

    missing = await client.get("/api/v1/medical-records/templates/CIRURGIA", headers=clinic.headers)
    assert missing.status_code == 404


async def test_create_record_is_draft(record, consultation):
    assert record["status"] == "DRAFT"
    assert record["consultationId"] == str(consultation.id)
    assert record["clinicalData"]["primaryDiagnosis"]["icd10Code"] == "M54.5"
    assert "notes" not in record["clinicalData"]


async def test_one_record_per_consultation(client, clinic, consultation, record):
    response = await client.post(
        "/api/v1/medical-records",
        json={"consultationId": str(consultation.id), "templateType": "RETORNO", "clinicalData": {}},
        headers=clinic.headers,
    )

    assert response.status_code == 400


@pytest.mark.security
async def test_only_consultation_doctor_creates_record(
    client, clinic, consultation, make_user, add_member, headers_for
):
    colleague, _ = await make_user("colega@clinicaverde.com.br", name="Dr. Colega", crm="777777")
    await add_member(colleague, clinic.organization, MembershipRole.DOCTOR)

    response = await client.post(
        "/api/v1/medical-records",
        json={"consultationId": str(consultation.id), "templateType": "RETORNO", "clinicalData": {}},
        headers=headers_for(colleague, clinic.organization),
    )

    assert response.status_code == 403


async def test_update_merges_clinical_data(client, clinic, record):
    response = await client.patch(
        f"/api/v1/medical-records/{record['id']}",
        json={"clinicalData": {"notes": "Retorno em 30 dias"}},
        headers=clinic.headers,
    )

    assert response.status_code == 200
    data = response.json()["clinicalData"]
    assert data["notes"] == "Retorno em 30 dias"
    assert data["chiefComplaint"] == CLINICAL_DATA["chiefComplaint"]


async def test_sign_locks_record(client, clinic, record, session_factory):
    url = f"/api/v1/medical-records/{record['id']}"

    signed = await client.post(f"{url}/sign", headers=clinic.headers)
    assert signed.status_code == 200
    body = signed.json()
    assert body["status"] == "SIGNED"
    assert len(body["signatureHash"]) == 64
    assert body["signedAt"]

    assert (await client.patch(url, json={"clinicalData": {"notes": "x"}}, headers=clinic.headers)).status_code == 400
    assert (await client.post(f"{url}/sign", headers=clinic.headers)).status_code == 400

    assert AuditAction.SIGN in await _audit_actions(session_factory, "MedicalRecord")


async def test_record_detail_and_list(client, clinic, patient, record):
    detail = await client.get(f"/api/v1/medical-records/{record['id']}", headers=clinic.headers)

    assert detail.status_code == 200
    assert detail.json()["patient"]["cpf"] == "529.982.247-25"
    assert detail.json()["doctor"]["user"]["name"] == clinic.owner.name

    listed = await client.get(
        "/api/v1/medical-records", params={"patientId": str(patient.id)}, headers=clinic.headers
    )
    assert [r["id"] for r in listed.json()] == [record["id"]]


@pytest.mark.security
async def test_record_of_another_organization_is_403(client, record, make_clinic):
    other = await make_clinic("Outra Clinica")

    response = await client.get(f"/api/v1/medical-records/{record['id']}", headers=other.headers)

    assert response.status_code == 403


# ============================================================================
# Prescriptions and products
# ============================================================================


async def test_prescription_lifecycle(client, clinic, patient, record, product):
    created = await client.post(
        "/api/v1/prescriptions",
        json=_prescription_payload(record["id"], productId=str(product.id)),
        headers=clinic.headers,
    )
    assert created.status_code == 201
    prescription = created.json()
    assert prescription["status"] == "DRAFT"
    assert prescription["patientId"] == str(patient.id)
    assert prescription["product"]["manufacturer"] == "Verde Pharma"
    url = f"/api/v1/prescriptions/{prescription['id']}"

    edited = await client.patch(url, json={"dosage": "0.5ml 2x ao dia"}, headers=clinic.headers)
    assert edited.json()["dosage"] == "0.5ml 2x ao dia"

    signed = await client.post(f"{url}/sign", headers=clinic.headers)
    assert signed.status_code == 200
    assert signed.json()["status"] == "SIGNED"
    assert len(signed.json()["signatureHash"]) == 64

    assert (await client.patch(url, json={"dosage": "1ml"}, headers=clinic.headers)).status_code == 400
    assert (await client.post(f"{url}/sign", headers=clinic.headers)).status_code == 400

    revoked = await client.post(f"{url}/revoke", json={"reason": "Interacao medicamentosa"}, headers=clinic.headers)
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "REVOKED"
    assert revoked.json()["revokeReason"] == "Interacao medicamentosa"

    again = await client.post(f"{url}/revoke", json={"reason": "de novo"}, headers=clinic.headers)
    assert again.status_code == 400


async def test_prescription_unknown_product_is_404(client, clinic, record):
    response = await client.post(
        "/api/v1/prescriptions",
        json=_prescription_payload(record["id"], productId="00000000-0000-4000-8000-000000000000"),
        headers=clinic.headers,
    )

    assert response.status_code == 404


@pytest.mark.parametrize("field", ["dosage", "validUntil"])
async def test_prescription_edit_rejects_null(client, clinic, record, field):
    created = await client.post("/api/v1/prescriptions", json=_prescription_payload(record["id"]), headers=clinic.headers)
    url = f"/api/v1/prescriptions/{created.json()['id']}"

    response = await client.patch(url, json={field: None}, headers=clinic.headers)

    assert response.status_code == 400
    assert (await client.get(url, headers=clinic.headers)).json()["dosage"] == "0.25ml 2x ao dia"


async def test_list_and_detail_prescriptions(client, clinic, patient, record):
    created = await client.post(
        "/api/v1/prescriptions", json=_prescription_payload(record["id"]), headers=clinic.headers
    )
    prescription_id = created.json()["id"]

    listed = await client.get(
        "/api/v1/prescriptions", params={"patientId": str(patient.id)}, headers=clinic.headers
    )
    body = listed.json()
    assert body["total"] == 1
    assert body["prescriptions"][0]["patient"]["cpf"] is None

    signed = await client.get("/api/v1/prescriptions", params={"status": "SIGNED"}, headers=clinic.headers)
    assert signed.json()["total"] == 0

    detail = await client.get(f"/api/v1/prescriptions/{prescription_id}", headers=clinic.headers)
    assert detail.json()["patient"]["cpf"] == "529.982.247-25"
    assert detail.json()["doctor"]["crm"] == clinic.doctor.crm


async def test_product_catalog_search(client, clinic, product, db_session):
    db_session.add(
        CannabisProduct(
            name="Full Spectrum THC 10",
            manufacturer="Cannab Labs",
            active_compound="THC",
            concentration="10mg/ml",
            presentation="Oleo",
            administration_route="Sublingual",
        )
    )
    await db_session.commit()

    everything = await client.get("/api/v1/products/cannabis", headers=clinic.headers)
    assert len(everything.json()) == 2

    by_name = await client.get("/api/v1/products/cannabis", params={"search": "verde"}, headers=clinic.headers)
    assert [p["name"] for p in by_name.json()] == [product.name]

    by_compound = await client.get(
        "/api/v1/products/cannabis", params={"activeCompound": "THC"}, headers=clinic.headers
    )
    assert [p["manufacturer"] for p in by_compound.json()] == ["Cannab Labs"]

    single = await client.get(f"/api/v1/products/cannabis/{product.id}", headers=clinic.headers)
    assert Decimal(str(single.json()["cbdPercentage"])) == Decimal("20")


# ============================================================================
# ANVISA reports
# ============================================================================


async def test_auto_fill_uses_record_and_prescription(client, clinic, record, product):
    prescription = (
        await client.post(
            "/api/v1/prescriptions",
            json=_prescription_payload(record["id"], productId=str(product.id)),
            headers=clinic.headers,
        )
    ).json()

    response = await client.get(
        "/api/v1/anvisa-reports/auto-fill",
        params={"medicalRecordId": record["id"], "prescriptionId": prescription["id"]},
        headers=clinic.headers,
    )

    assert response.status_code == 200
    form = response.json()
    assert form["patient"]["cpf"] == "529.982.247-25"
    assert form["doctor"]["crm"] == clinic.doctor.crm
    assert form["diagnosis"]["icd10Code"] == "M54.5"
    assert form["prescription"]["manufacturer"] == "Verde Pharma"
    assert form["monitoring"]["returnFrequency"] == "30 dias"
    assert form["declarations"]["consentObtained"] is False


async def test_report_workflow(client, clinic, patient, record, db_session, fetch):
    """Draft without consent, consent, sign, submit and approval."""
    prescription = (
        await client.post("/api/v1/prescriptions", json=_prescription_payload(record["id"]), headers=clinic.headers)
    ).json()
    await client.post(f"/api/v1/prescriptions/{prescription['id']}/sign", headers=clinic.headers)

    form = (
        await client.get(
            "/api/v1/anvisa-reports/auto-fill",
            params={"medicalRecordId": record["id"], "prescriptionId": prescription["id"]},
            headers=clinic.headers,
        )
    ).json()
    created = await client.post(
        "/api/v1/anvisa-reports",
        json={"medicalRecordId": record["id"], "prescriptionId": prescription["id"], "formData": form},
        headers=clinic.headers,
    )
    assert created.status_code == 201
    report_url = f"/api/v1/anvisa-reports/{created.json()['id']}"

    no_consent = await client.post(f"{report_url}/sign", headers=clinic.headers)
    assert no_consent.status_code == 400
    assert no_consent.json()["message"] == "Consentimento do paciente e obrigatorio"

    consent = {
        "patientInformed": True,
        "risksExplained": True,
        "alternativesDiscussed": True,
        "consentObtained": True,
    }
    updated = await client.patch(report_url, json={"formData": {"declarations": consent}}, headers=clinic.headers)
    assert updated.json()["formData"]["declarations"]["consentObtained"] is True
    assert updated.json()["formData"]["patient"]["cpf"] == "529.982.247-25"

    signed = await client.post(f"{report_url}/sign", headers=clinic.headers)
    assert signed.status_code == 200
    body = signed.json()
    assert body["status"] == "SIGNED"
    assert body["expiresAt"] > body["signedAt"]
    assert (await fetch(Patient, patient.id)).pipeline_status == PipelineStatus.DOCUMENTACAO_ANVISA

    locked = await client.patch(report_url, json={"formData": {}}, headers=clinic.headers)
    assert locked.status_code == 400

    submitted = await client.post(f"{report_url}/submit", json={"protocolNumber": "25351.000123/2026-01"}, headers=clinic.headers)
    assert submitted.json()["status"] == "SUBMITTED"
    assert submitted.json()["protocolNumber"] == "25351.000123/2026-01"
    assert (await fetch(Patient, patient.id)).pipeline_status == PipelineStatus.SUBMETIDO_ANVISA

    approved = await client.patch(f"{report_url}/status", json={"status": "APPROVED"}, headers=clinic.headers)
    assert approved.json()["status"] == "APPROVED"
    assert (await fetch(Patient, patient.id)).pipeline_status == PipelineStatus.APROVADO


async def test_checklist_tracks_readiness(client, clinic, patient, record, db_session):
    prescription = (
        await client.post("/api/v1/prescriptions", json=_prescription_payload(record["id"]), headers=clinic.headers)
    ).json()
    form = (
        await client.get(
            "/api/v1/anvisa-reports/auto-fill",
            params={"medicalRecordId": record["id"], "prescriptionId": prescription["id"]},
            headers=clinic.headers,
        )
    ).json()
    form["declarations"]["consentObtained"] = True
    report = (
        await client.post(
            "/api/v1/anvisa-reports",
            json={"medicalRecordId": record["id"], "prescriptionId": prescription["id"], "formData": form},
            headers=clinic.headers,
        )
    ).json()
    checklist_url = f"/api/v1/anvisa-reports/{report['id']}/checklist"

    initial = (await client.get(checklist_url, headers=clinic.headers)).json()
    assert initial == {
        "laudoCompleto": False,
        "prescricaoAssinada": False,
        "tcleAssinado": True,
        "documentosPaciente": False,
        "crmVerificado": False,
        "dadosCompletos": True,
        "prontoParaSubmissao": False,
    }

    await client.post(f"/api/v1/prescriptions/{prescription['id']}/sign", headers=clinic.headers)
    await client.post(f"/api/v1/anvisa-reports/{report['id']}/sign", headers=clinic.headers)
    for document_type in (DocumentType.RG, DocumentType.COMPROVANTE_RESIDENCIA):
        db_session.add(
            PatientDocument(
                patient_id=patient.id,
                name=f"{document_type.value.lower()}.pdf",
                type=document_type,
                url=f"patients/{patient.id}/{document_type.value.lower()}.pdf",
                mime_type="application/pdf",
                size=1024,
            )
        )
    clinic.doctor.crm_verified = True
    await db_session.commit()

    ready = (await client.get(checklist_url, headers=clinic.headers)).json()
    assert all(ready.values())


async def test_report_rejects_prescription_of_other_record(
    client, clinic, patient, record, make_consultation
):
    other_consultation = await make_consultation(
        clinic.organization, patient, clinic.doctor, status=ConsultationStatus.COMPLETED
    )
    other_record = (
        await client.post(
            "/api/v1/medical-records",
            json={"consultationId": str(other_consultation.id), "templateType": "RETORNO", "clinicalData": {}},
            headers=clinic.headers,
        )
    ).json()
    prescription = (
        await client.post("/api/v1/prescriptions", json=_prescription_payload(other_record["id"]), headers=clinic.headers)
    ).json()

    response = await client.post(
        "/api/v1/anvisa-reports",
        json={"medicalRecordId": record["id"], "prescriptionId": prescription["id"]},
        headers=clinic.headers,
    )

    assert response.status_code == 400


async def test_status_update_requires_submission(client, clinic, record):
    report = (
        await client.post("/api/v1/anvisa-reports", json={"medicalRecordId": record["id"]}, headers=clinic.headers)
    ).json()

    response = await client.patch(
        f"/api/v1/anvisa-reports/{report['id']}/status", json={"status": "APPROVED"}, headers=clinic.headers
    )
    assert response.status_code == 400

    invalid = await client.patch(
        f"/api/v1/anvisa-reports/{report['id']}/status", json={"status": "SIGNED"}, headers=clinic.headers
    )
    assert invalid.status_code == 400


async def test_list_reports_by_patient(client, clinic, patient, record):
    report = (
        await client.post("/api/v1/anvisa-reports", json={"medicalRecordId": record["id"]}, headers=clinic.headers)
    ).json()

    listed = await client.get("/api/v1/anvisa-reports", params={"patientId": str(patient.id)}, headers=clinic.headers)

    assert [r["id"] for r in listed.json()] == [report["id"]]
    assert UUID(listed.json()[0]["patient"]["id"]) == patient.id
