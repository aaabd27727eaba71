"""Pytest configuration and fixtures for CANNEO API tests."""

import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ARQ_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("DAILY_API_KEY", None)

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import async_session_maker, get_db
from app.core.security import (
    cpf_last_four,
    create_access_token,
    encrypt_cpf,
    hash_cpf,
    hash_password,
)
from app.main import app
from app.models import (
    Base,
    BillingCycle,
    Consultation,
    ConsultationStatus,
    ConsultationType,
    DoctorProfile,
    Membership,
    MembershipRole,
    Organization,
    OrganizationType,
    Patient,
    PipelineStatus,
    Plan,
    Subscription,
    SubscriptionStatus,
    User,
)
from app.models.base import utcnow
from app.services.storage import get_storage_service

DEFAULT_PASSWORD = "Senha123"


# ============================================================================
# Database Engine and Session Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    File-backed SQLite database, created per test.

    A file (not :memory:) so the audit middleware and the dashboard's
    parallel sessions see the same data as the request session.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'canneo_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to arrange data."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fetch(session_factory):
    """
    Load a row in a fresh session.

    The arranging session keeps its own identity map; use this to observe
    what a request committed.
    """

    async def _fetch(model: type, pk: Any) -> Any:
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


# ============================================================================
# HTTP Client Fixtures
# ============================================================================


class FakeStorage:
    """In-memory stand-in for the MinIO document storage."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def upload_document(
        self, patient_id: str, filename: str, data: bytes, content_type: str
    ) -> str:
        key = f"patients/{patient_id}/{filename}"
        self.objects[key] = data
        return key

    async def delete_object(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)

    async def get_presigned_url(self, key: str, expires: timedelta) -> str:
        return f"https://storage.test/{key}?expires={int(expires.total_seconds())}"

    async def ensure_bucket_exists(self) -> None:
        return None


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture
async def client(session_factory, storage) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with a fresh database session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.state.session_factory = session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.session_factory = async_session_maker


def auth_headers(user: User, organization: Optional[Organization] = None) -> dict[str, str]:
    """Bearer access token plus x-org-id when an organization is given."""
    headers = {"Authorization": f"Bearer {create_access_token(str(user.id), user.email)}"}
    if organization is not None:
        headers["x-org-id"] = str(organization.id)
    return headers


@pytest.fixture
def headers_for():
    return auth_headers


# ============================================================================
# Test Data Fixtures - Plans and Organizations
# ============================================================================


@pytest_asyncio.fixture
async def solo_plan(db_session) -> Plan:
    plan = Plan(
        name="SOLO",
        display_name="Solo",
        price_monthly=Decimal("149.00"),
        price_yearly=Decimal("1490.00"),
        max_doctors=1,
        max_patients=100,
        max_consultations=-1,
        features=["Agenda", "Prontuario"],
        sort_order=1,
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@dataclass
class Clinic:
    """An organization with its owner doctor and subscription."""

    organization: Organization
    owner: User
    doctor: DoctorProfile
    membership: Membership
    subscription: Subscription

    @property
    def headers(self) -> dict[str, str]:
        return auth_headers(self.owner, self.organization)


@pytest_asyncio.fixture
async def make_user(db_session):
    """Create a user, optionally with a doctor profile."""

    async def _make_user(
        email: str,
        name: str = "Usuario Teste",
        password: str = DEFAULT_PASSWORD,
        crm: Optional[str] = None,
        uf_crm: str = "SP",
        **fields: Any,
    ) -> tuple[User, Optional[DoctorProfile]]:
        user = User(email=email, name=name, password_hash=hash_password(password), **fields)
        db_session.add(user)
        await db_session.flush()

        profile = None
        if crm is not None:
            profile = DoctorProfile(user=user, crm=crm, uf_crm=uf_crm, specialty="Clinica Geral")
            db_session.add(profile)

        await db_session.commit()
        return user, profile

    return _make_user


@pytest_asyncio.fixture
async def add_member(db_session):
    """Bind a user to an organization with a role."""

    async def _add_member(
        user: User,
        organization: Organization,
        role: MembershipRole,
        is_active: bool = True,
    ) -> Membership:
        membership = Membership(
            user=user,
            organization=organization,
            role=role,
            is_active=is_active,
            joined_at=utcnow(),
        )
        db_session.add(membership)
        await db_session.commit()
        return membership

    return _add_member


@pytest_asyncio.fixture
async def make_clinic(db_session, solo_plan, make_user, add_member):
    """Create an organization owned by a new doctor."""
    counter = {"n": 0}

    async def _make_clinic(
        name: str = "Clinica Verde",
        subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        **subscription_fields: Any,
    ) -> Clinic:
        counter["n"] += 1
        n = counter["n"]

        organization = Organization(
            name=name,
            slug=f"clinica-{n}-{utcnow().timestamp():.0f}",
            type=OrganizationType.CLINICA,
            settings={},
        )
        db_session.add(organization)
        await db_session.flush()

        owner, profile = await make_user(
            email=f"dono{n}@clinicaverde.com.br",
            name=f"Dra. Ana Souza {n}",
            crm=f"12345{n}",
        )
        membership = await add_member(owner, organization, MembershipRole.OWNER)

        now = utcnow()
        subscription = Subscription(
            organization_id=organization.id,
            plan_id=solo_plan.id,
            status=subscription_status,
            billing_cycle=BillingCycle.MONTHLY,
            current_period_start=now,
            current_period_end=now + timedelta(days=30),
            **subscription_fields,
        )
        db_session.add(subscription)
        await db_session.commit()

        assert profile is not None
        return Clinic(
            organization=organization,
            owner=owner,
            doctor=profile,
            membership=membership,
            subscription=subscription,
        )

    return _make_clinic


@pytest_asyncio.fixture
async def clinic(make_clinic) -> Clinic:
    """Default organization with an ACTIVE subscription."""
    return await make_clinic()


# ============================================================================
# Test Data Fixtures - Patients and Consultations
# ============================================================================


@pytest_asyncio.fixture
async def make_patient(db_session):
    async def _make_patient(
        organization: Organization,
        name: str = "Joao da Silva",
        cpf: str = "529.982.247-25",
        email: Optional[str] = None,
        pipeline_status: PipelineStatus = PipelineStatus.LEAD,
        **fields: Any,
    ) -> Patient:
        patient = Patient(
            organization_id=organization.id,
            name=name,
            cpf_encrypted=encrypt_cpf(cpf),
            cpf_hash=hash_cpf(cpf),
            cpf_last_four=cpf_last_four(cpf),
            email=email,
            pipeline_status=pipeline_status,
            **fields,
        )
        db_session.add(patient)
        await db_session.commit()
        return patient

    return _make_patient


@pytest_asyncio.fixture
async def patient(make_patient, clinic) -> Patient:
    return await make_patient(clinic.organization, email="joao@pacientes.com.br")


@pytest_asyncio.fixture
async def make_consultation(db_session):
    async def _make_consultation(
        organization: Organization,
        patient: Patient,
        doctor: DoctorProfile,
        scheduled_at: Optional[datetime] = None,
        status: ConsultationStatus = ConsultationStatus.SCHEDULED,
        duration: int = 60,
        **fields: Any,
    ) -> Consultation:
        consultation = Consultation(
            organization_id=organization.id,
            patient=patient,
            doctor=doctor,
            type=ConsultationType.PRIMEIRA_CONSULTA,
            status=status,
            scheduled_at=scheduled_at or utcnow() + timedelta(days=2),
            duration=duration,
            room_name=f"canneo-test-{uuid4().hex[:12]}",
            **fields,
        )
        db_session.add(consultation)
        await db_session.commit()
        return consultation

    return _make_consultation
