"""Published legal documents."""

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import LegalTerm, LegalTermType


class LegalTermService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def active_terms(self) -> list[LegalTerm]:
        """Latest active version of each term type."""
        terms = await self.db.scalars(
            select(LegalTerm)
            .where(LegalTerm.is_active.is_(True))
            .order_by(LegalTerm.type, LegalTerm.published_at.desc().nulls_last(), LegalTerm.created_at.desc())
        )
        latest: dict[LegalTermType, LegalTerm] = {}
        for term in terms:
            latest.setdefault(term.type, term)
        return list(latest.values())

    async def get_by_type(self, term_type: LegalTermType) -> LegalTerm:
        term = await self.db.scalar(
            select(LegalTerm)
            .where(LegalTerm.type == term_type, LegalTerm.is_active.is_(True))
            .order_by(LegalTerm.published_at.desc().nulls_last(), LegalTerm.created_at.desc())
            .limit(1)
        )
        if term is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Termo {term_type.value} nao encontrado",
            )
        return term
