"""Legal terms endpoints and reference data seeding."""

from datetime import timedelta

from sqlalchemy import func, select

from app.db.seed import LEGAL_TERMS, PLANS, PRODUCTS, seed
from app.models import CannabisProduct, LegalTerm, LegalTermType, Plan
from app.models.base import utcnow


async def test_seed_is_idempotent(db_session):
    await seed(db_session)
    await seed(db_session)

    assert await db_session.scalar(select(func.count(Plan.id))) == len(PLANS)
    assert await db_session.scalar(select(func.count(LegalTerm.id))) == len(LEGAL_TERMS)
    assert await db_session.scalar(select(func.count(CannabisProduct.id))) == len(PRODUCTS)


async def test_seed_updates_plan_prices(db_session):
    await seed(db_session)
    solo = await db_session.scalar(select(Plan).where(Plan.name == "SOLO"))
    solo.max_patients = 1
    await db_session.commit()

    await seed(db_session)

    await db_session.refresh(solo)
    assert solo.max_patients == 100


async def test_list_active_terms(client, db_session):
    await seed(db_session)

    response = await client.get("/api/v1/legal-terms")

    assert response.status_code == 200
    assert {t["type"] for t in response.json()} == {t.value for t in LegalTermType}


async def test_latest_version_wins(client, db_session):
    await seed(db_session)
    db_session.add(
        LegalTerm(
            type=LegalTermType.TCLE,
            version="v2.0",
            title="TCLE revisado",
            content="# TCLE v2",
            is_active=True,
            published_at=utcnow() + timedelta(minutes=1),
        )
    )
    await db_session.commit()

    response = await client.get("/api/v1/legal-terms/TCLE")

    assert response.status_code == 200
    assert response.json()["version"] == "v2.0"
    assert response.json()["title"] == "TCLE revisado"


async def test_missing_term_is_404(client):
    response = await client.get("/api/v1/legal-terms/PRIVACY_POLICY")

    assert response.status_code == 404
    assert response.json()["message"] == "Termo PRIVACY_POLICY nao encontrado"


async def test_unknown_term_type_is_400(client):
    response = await client.get("/api/v1/legal-terms/COOKIES")

    assert response.status_code == 400
