"""Background job tests: email delivery, reminders and expiry crons."""

from datetime import date, timedelta
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio

from app.core.config import settings
from app.core.database import get_db_session
from app.models import (
    ConsultationStatus,
    MedicalRecord,
    Patient,
    Prescription,
    PrescriptionStatus,
    Subscription,
    SubscriptionStatus,
    TemplateType,
)
from app.models.base import utcnow
from app.services.email import EmailMessage, EmailService, render_template
from app.services.task_queue import TaskQueueService, get_task_queue_service
from app.utils.timezones import local_today
from app.worker.tasks import expire_prescriptions, expire_trials, send_consultation_reminder, send_email_job


class RecordingEmail(EmailService):
    """Email service that keeps messages in memory."""

    def __init__(self, delivered: bool = True) -> None:
        super().__init__(api_key="")
        self.delivered = delivered
        self.sent: list[tuple[str, EmailMessage]] = []

    async def send_message(self, to: str, message: EmailMessage) -> bool:
        self.sent.append((to, message))
        return self.delivered


@pytest.fixture
def email() -> RecordingEmail:
    return RecordingEmail()


@pytest.fixture
def ctx(session_factory, email) -> dict[str, Any]:
    return {"session_factory": session_factory, "email": email, "job_id": "job-1"}


@pytest_asyncio.fixture
async def make_prescription(db_session, clinic, patient, make_consultation):
    consultation = await make_consultation(
        clinic.organization, patient, clinic.doctor, status=ConsultationStatus.COMPLETED
    )
    record = MedicalRecord(
        organization_id=clinic.organization.id,
        consultation_id=consultation.id,
        patient_id=patient.id,
        doctor_id=clinic.doctor.id,
        template_type=TemplateType.PRIMEIRA_CONSULTA,
        clinical_data={},
    )
    db_session.add(record)
    await db_session.flush()

    async def _make_prescription(valid_until: date, status: PrescriptionStatus) -> Prescription:
        prescription = Prescription(
            organization_id=clinic.organization.id,
            medical_record_id=record.id,
            patient_id=patient.id,
            doctor_id=clinic.doctor.id,
            product_name="Canabidiol Verde 200mg/ml",
            concentration="200mg/ml",
            dosage="0.25ml 2x ao dia",
            quantity="1 frasco",
            valid_until=valid_until,
            status=status,
        )
        db_session.add(prescription)
        await db_session.commit()
        return prescription

    return _make_prescription


# ============================================================================
# Email
# ============================================================================


def test_render_unknown_template_raises():
    with pytest.raises(KeyError):
        render_template("inexistente", {})


def test_prescription_ready_template():
    message = render_template(
        "prescription_ready",
        {"patient_name": "Joao", "product_name": "Canabidiol <200mg>", "prescription_id": "p-1"},
    )

    assert message.subject == "Sua prescricao esta disponivel!"
    assert "Canabidiol &lt;200mg&gt;" in message.html
    assert message.text.endswith(f"{settings.FRONTEND_URL}/my-prescriptions/p-1")


async def test_send_email_job(ctx, email):
    result = await send_email_job(ctx, "welcome", "joao@pacientes.com.br", {"name": "Joao"})

    assert result is True
    assert [to for to, _ in email.sent] == ["joao@pacientes.com.br"]


async def test_send_email_job_raises_for_retry(ctx):
    ctx["email"] = RecordingEmail(delivered=False)

    with pytest.raises(RuntimeError):
        await send_email_job(ctx, "welcome", "joao@pacientes.com.br", {"name": "Joao"})


async def test_unconfigured_email_is_logged_only():
    assert await EmailService(api_key="").send_email("a@b.com", "Assunto", "<p>Oi</p>") is True


# ============================================================================
# Consultation reminders
# ============================================================================


async def test_reminder_sent_to_patient(ctx, email, clinic, patient, make_consultation):
    consultation = await make_consultation(clinic.organization, patient, clinic.doctor)

    result = await send_consultation_reminder(ctx, str(consultation.id))

    assert result == str(consultation.id)
    ((to, message),) = email.sent
    assert to == patient.email
    assert message.subject.startswith("Lembrete:")


async def test_reminder_skipped_for_canceled(ctx, email, clinic, patient, make_consultation):
    consultation = await make_consultation(
        clinic.organization, patient, clinic.doctor, status=ConsultationStatus.CANCELED
    )

    assert await send_consultation_reminder(ctx, str(consultation.id)) is None
    assert email.sent == []


async def test_reminder_skipped_without_patient_email(ctx, email, clinic, make_patient, make_consultation):
    no_email = await make_patient(clinic.organization, name="Sem Email", cpf="111.444.777-35")
    consultation = await make_consultation(clinic.organization, no_email, clinic.doctor)

    assert await send_consultation_reminder(ctx, str(consultation.id)) is None
    assert email.sent == []


# ============================================================================
# Expiry crons
# ============================================================================


async def test_expire_prescriptions(ctx, make_prescription, fetch):
    today = local_today()
    stale = await make_prescription(today - timedelta(days=2), PrescriptionStatus.SIGNED)
    current = await make_prescription(today + timedelta(days=30), PrescriptionStatus.SIGNED)
    draft = await make_prescription(today - timedelta(days=2), PrescriptionStatus.DRAFT)

    assert await expire_prescriptions(ctx) == 1

    assert (await fetch(Prescription, stale.id)).status == PrescriptionStatus.EXPIRED
    assert (await fetch(Prescription, current.id)).status == PrescriptionStatus.SIGNED
    assert (await fetch(Prescription, draft.id)).status == PrescriptionStatus.DRAFT


async def test_expire_trials(ctx, make_clinic, fetch):
    ended = await make_clinic(
        subscription_status=SubscriptionStatus.TRIAL, trial_ends_at=utcnow() - timedelta(hours=1)
    )
    running = await make_clinic(
        subscription_status=SubscriptionStatus.TRIAL, trial_ends_at=utcnow() + timedelta(days=5)
    )

    assert await expire_trials(ctx) == 1

    assert (await fetch(Subscription, ended.subscription.id)).status == SubscriptionStatus.PAST_DUE
    assert (await fetch(Subscription, running.subscription.id)).status == SubscriptionStatus.TRIAL


# ============================================================================
# Task queue
# ============================================================================


async def test_disabled_queue_drops_jobs(monkeypatch):
    monkeypatch.setattr(settings, "ARQ_ENABLED", False)

    assert await TaskQueueService().enqueue_email("welcome", "a@b.com", {"name": "A"}) is None


class RecordingPool:
    """Stands in for ArqRedis: a job id already queued is not queued again."""

    def __init__(self) -> None:
        self.jobs: dict[str, tuple[str, tuple[Any, ...], Any]] = {}

    async def enqueue_job(self, function: str, *args: Any, _job_id: str, _defer_until: Any = None):
        if _job_id in self.jobs:
            return None
        self.jobs[_job_id] = (function, args, _defer_until)
        return SimpleNamespace(job_id=_job_id)


@pytest.fixture
def pool(monkeypatch) -> RecordingPool:
    recording = RecordingPool()
    monkeypatch.setattr(settings, "ARQ_ENABLED", True)
    monkeypatch.setattr(get_task_queue_service(), "_pool", recording)
    return recording


async def test_duplicate_job_id_is_not_reported_as_queued(pool):
    queue = get_task_queue_service()

    assert await queue.enqueue("send_email_job", job_id="job-a") == "job-a"
    assert await queue.enqueue("send_email_job", job_id="job-a") is None


async def test_reschedule_queues_new_reminder_and_drops_old(client, clinic, patient, pool, ctx, email):
    first_time = utcnow().replace(microsecond=0) + timedelta(days=5)
    second_time = first_time + timedelta(days=2)

    created = await client.post(
        "/api/v1/consultations",
        json={
            "patientId": str(patient.id),
            "doctorId": str(clinic.doctor.id),
            "type": "PRIMEIRA_CONSULTA",
            "scheduledAt": first_time.isoformat(),
            "duration": 60,
        },
        headers=clinic.headers,
    )
    assert created.status_code == 201
    consultation_id = created.json()["id"]

    moved = await client.patch(
        f"/api/v1/consultations/{consultation_id}",
        json={"scheduledAt": second_time.isoformat()},
        headers=clinic.headers,
    )
    assert moved.status_code == 200

    reminders = sorted(pool.jobs.values(), key=lambda job: job[2])
    assert [job[2] for job in reminders] == [first_time - timedelta(hours=24), second_time - timedelta(hours=24)]

    (_, old_args, _), (_, new_args, _) = reminders
    assert await send_consultation_reminder(ctx, *old_args) is None
    assert await send_consultation_reminder(ctx, *new_args) == consultation_id
    assert len(email.sent) == 1


# ============================================================================
# Sessions
# ============================================================================


async def test_db_session_rolls_back_on_error(session_factory, patient, fetch):
    with pytest.raises(RuntimeError):
        async with get_db_session(session_factory) as session:
            stored = await session.get(Patient, patient.id)
            stored.name = "Nome Alterado"
            await session.flush()
            raise RuntimeError("job failed")

    assert (await fetch(Patient, patient.id)).name == patient.name
