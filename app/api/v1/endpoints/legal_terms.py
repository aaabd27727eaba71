"""Public legal documents."""

from fastapi import APIRouter

from app.api.dependencies import DbSession
from app.models import LegalTermType
from app.schemas.legal import LegalTermResponse
from app.services.legal_terms import LegalTermService

router = APIRouter()


@router.get("", response_model=list[LegalTermResponse], summary="Active legal terms")
async def list_terms(db: DbSession) -> list[LegalTermResponse]:
    terms = await LegalTermService(db).active_terms()
    return [LegalTermResponse.model_validate(term) for term in terms]


@router.get("/{term_type}", response_model=LegalTermResponse, summary="Legal term by type")
async def get_term(term_type: LegalTermType, db: DbSession) -> LegalTermResponse:
    return LegalTermResponse.model_validate(await LegalTermService(db).get_by_type(term_type))
