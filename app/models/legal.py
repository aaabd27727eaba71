"""Legal term model - Versioned terms of use, privacy policy and consents."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, UTCDateTime, enum_column


class LegalTermType(str, Enum):
    """Legal document kinds."""

    TERMS_OF_USE = "TERMS_OF_USE"
    PRIVACY_POLICY = "PRIVACY_POLICY"
    TCLE = "TCLE"
    TELECONSULTA = "TELECONSULTA"


class LegalTerm(BaseModel):
    """Published version of a legal document."""

    __tablename__ = "legal_terms"

    type: Mapped[LegalTermType] = mapped_column(
        enum_column(LegalTermType, "legal_term_type"),
        nullable=False,
    )

    version: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (UniqueConstraint("type", "version", name="uq_legal_terms_type_version"),)
