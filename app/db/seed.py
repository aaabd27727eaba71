"""
Reference data: plans, legal terms and the cannabis product catalog.

Usage:
    python -m app.db.seed
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import engine, get_db_session
from app.core.logging import setup_logging
from app.models import CannabisProduct, LegalTerm, LegalTermType, Plan
from app.models.base import utcnow

logger = logging.getLogger(__name__)

UNLIMITED = -1

PLANS: list[dict[str, Any]] = [
    {
        "name": "SOLO",
        "display_name": "Solo",
        "description": "Para médicos que atendem individualmente",
        "price_monthly": Decimal("199.00"),
        "price_yearly": Decimal("1990.00"),
        "max_doctors": 1,
        "max_patients": 100,
        "max_consultations": UNLIMITED,
        "features": [
            "Teleconsultas ilimitadas",
            "Prontuário eletrônico",
            "Prescrições digitais",
            "Laudo ANVISA",
            "Suporte por email",
        ],
        "sort_order": 1,
    },
    {
        "name": "TEAM",
        "display_name": "Team",
        "description": "Para pequenas clínicas com até 5 médicos",
        "price_monthly": Decimal("399.00"),
        "price_yearly": Decimal("3990.00"),
        "max_doctors": 5,
        "max_patients": 500,
        "max_consultations": UNLIMITED,
        "features": [
            "Tudo do plano Solo",
            "Até 5 médicos",
            "Secretárias ilimitadas",
            "Agenda compartilhada",
            "Suporte prioritário",
        ],
        "sort_order": 2,
    },
    {
        "name": "CLINIC",
        "display_name": "Clinic",
        "description": "Para clínicas maiores com equipe completa",
        "price_monthly": Decimal("799.00"),
        "price_yearly": Decimal("7990.00"),
        "max_doctors": 20,
        "max_patients": 2000,
        "max_consultations": UNLIMITED,
        "features": [
            "Tudo do plano Team",
            "Até 20 médicos",
            "Relatórios avançados",
            "API de integração",
            "Suporte 24/7",
        ],
        "sort_order": 3,
    },
]

LEGAL_TERMS_VERSION = "v1.0"

LEGAL_TERMS: list[dict[str, Any]] = [
    {
        "type": LegalTermType.TERMS_OF_USE,
        "title": "Termos de Uso",
        "content": (
            "# Termos de Uso - CANNEO\n\n"
            "## 1. Aceitação\nAo usar a plataforma CANNEO você concorda com estes termos.\n\n"
            "## 2. Serviços\nPlataforma de telemedicina especializada em cannabis medicinal.\n\n"
            "## 3. Responsabilidades do Médico\n"
            "- Manter CRM ativo e regular\n- Seguir as normas do CFM e da ANVISA\n- Garantir o sigilo médico\n\n"
            "## 4. Privacidade\nDados protegidos conforme a Política de Privacidade e a LGPD."
        ),
    },
    {
        "type": LegalTermType.PRIVACY_POLICY,
        "title": "Política de Privacidade",
        "content": (
            "# Política de Privacidade - CANNEO\n\n"
            "## 1. Dados Coletados\nApenas os necessários para a prestação do serviço de telemedicina.\n\n"
            "## 2. Uso dos Dados\n"
            "- Prestação dos serviços médicos\n- Cumprimento de obrigações legais (ANVISA, CFM)\n\n"
            "## 3. Seus Direitos (LGPD)\nVocê pode acessar, corrigir e excluir seus dados.\n\n"
            "## 4. Segurança\nDados sensíveis são armazenados criptografados."
        ),
    },
    {
        "type": LegalTermType.TCLE,
        "title": "Termo de Consentimento Livre e Esclarecido",
        "content": (
            "# Termo de Consentimento Livre e Esclarecido\n\n"
            "## Tratamento com Cannabis Medicinal\n\n"
            "1. Fui informado(a) sobre o tratamento proposto com produtos à base de cannabis\n"
            "2. Compreendo os potenciais benefícios e riscos\n"
            "3. Autorizo o tratamento de forma voluntária\n"
            "4. Posso revogar este consentimento a qualquer momento\n\n"
            "Em conformidade com a RDC 327/2019 e a RDC 660/2022 da ANVISA."
        ),
    },
    {
        "type": LegalTermType.TELECONSULTA,
        "title": "Termo de Consentimento para Teleconsulta",
        "content": (
            "# Termo de Consentimento para Teleconsulta\n\n"
            "1. Aceito realizar consulta médica por videoconferência\n"
            "2. Compreendo as limitações da telemedicina\n"
            "3. Disponho de ambiente adequado e privado\n"
            "4. Poderei ser encaminhado(a) para atendimento presencial\n\n"
            "Em conformidade com a Lei 13.989/2020 e a Resolução CFM 2.314/2022."
        ),
    },
]

PRODUCTS: list[dict[str, Any]] = [
    {
        "name": "Green Care Full Spectrum 3000mg",
        "manufacturer": "Green Care",
        "active_compound": "Full Spectrum",
        "concentration": "100mg/ml",
        "thc_percentage": Decimal("0.3"),
        "cbd_percentage": Decimal("99.7"),
        "presentation": "Óleo",
        "volume": "30ml",
        "administration_route": "Sublingual",
        "description": "Óleo full spectrum com alto teor de CBD",
    },
    {
        "name": "HempMeds CBD Isolado 1000mg",
        "manufacturer": "HempMeds",
        "active_compound": "CBD Isolado",
        "concentration": "33.3mg/ml",
        "thc_percentage": Decimal("0"),
        "cbd_percentage": Decimal("100"),
        "presentation": "Óleo",
        "volume": "30ml",
        "administration_route": "Sublingual",
        "description": "CBD isolado sem THC",
    },
    {
        "name": "Ease Labs THC:CBD 1:1",
        "manufacturer": "Ease Labs",
        "active_compound": "THC:CBD Balanceado",
        "concentration": "25mg/ml cada",
        "thc_percentage": Decimal("50"),
        "cbd_percentage": Decimal("50"),
        "presentation": "Óleo",
        "volume": "30ml",
        "administration_route": "Sublingual",
        "description": "Proporção equilibrada de THC e CBD",
    },
    {
        "name": "Abrace CBD 2000mg",
        "manufacturer": "Abrace",
        "active_compound": "CBD",
        "concentration": "66.6mg/ml",
        "thc_percentage": Decimal("0"),
        "cbd_percentage": Decimal("100"),
        "presentation": "Óleo",
        "volume": "30ml",
        "administration_route": "Sublingual",
        "description": "CBD de alta concentração",
    },
]


async def seed_plans(session: AsyncSession) -> None:
    for data in PLANS:
        plan = await session.scalar(select(Plan).where(Plan.name == data["name"]))
        if plan is None:
            session.add(Plan(**data, is_active=True))
            logger.info(f"Plan {data['name']} created")
        else:
            for field, value in data.items():
                setattr(plan, field, value)
            plan.is_active = True
            logger.info(f"Plan {data['name']} updated")


async def seed_legal_terms(session: AsyncSession) -> None:
    for data in LEGAL_TERMS:
        term = await session.scalar(
            select(LegalTerm).where(
                LegalTerm.type == data["type"], LegalTerm.version == LEGAL_TERMS_VERSION
            )
        )
        if term is None:
            session.add(
                LegalTerm(**data, version=LEGAL_TERMS_VERSION, is_active=True, published_at=utcnow())
            )
        else:
            term.title = data["title"]
            term.content = data["content"]
            term.is_active = True
        logger.info(f"Legal term {data['type'].value} {LEGAL_TERMS_VERSION} upserted")


async def seed_products(session: AsyncSession) -> None:
    """Products are created once and never overwritten."""
    for data in PRODUCTS:
        exists = await session.scalar(select(CannabisProduct.id).where(CannabisProduct.name == data["name"]))
        if exists is None:
            session.add(CannabisProduct(**data, is_active=True))
            logger.info(f"Product {data['name']} created")


async def seed(session: AsyncSession) -> None:
    await seed_plans(session)
    await seed_legal_terms(session)
    await seed_products(session)
    await session.commit()


async def main() -> None:
    setup_logging()
    async with get_db_session() as session:
        await seed(session)
    await engine.dispose()
    logger.info("Seed completed")


if __name__ == "__main__":
    asyncio.run(main())
