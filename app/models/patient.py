"""Patient models - Demographics, pipeline stage and uploaded documents."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType, TenantModel, UTCDateTime, enum_column, utcnow


class PipelineStatus(str, Enum):
    """Stage of the patient in the treatment funnel."""

    LEAD = "LEAD"
    CONTATO_INICIAL = "CONTATO_INICIAL"
    CONSULTA_AGENDADA = "CONSULTA_AGENDADA"
    EM_CONSULTA = "EM_CONSULTA"
    PRESCRICAO_EMITIDA = "PRESCRICAO_EMITIDA"
    DOCUMENTACAO_ANVISA = "DOCUMENTACAO_ANVISA"
    SUBMETIDO_ANVISA = "SUBMETIDO_ANVISA"
    APROVADO = "APROVADO"
    EM_TRATAMENTO = "EM_TRATAMENTO"
    INATIVO = "INATIVO"


class DocumentType(str, Enum):
    """Patient document kinds required by ANVISA submissions."""

    RG = "RG"
    CPF = "CPF"
    COMPROVANTE_RESIDENCIA = "COMPROVANTE_RESIDENCIA"
    LAUDO_ANTERIOR = "LAUDO_ANTERIOR"
    OUTROS = "OUTROS"


class Patient(TenantModel):
    """
    Patient model.

    CPF is never stored in clear text: an AES-GCM ciphertext for display,
    a sha256 hash for lookups and the last four digits for search.
    """

    __tablename__ = "patients"

    # Identity
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Patient full name (PII)",
    )

    cpf_encrypted: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="AES-256-GCM encrypted CPF (hex iv||tag||ciphertext)",
    )

    cpf_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="sha256 of CPF digits for lookups",
    )

    cpf_last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment="Last four CPF digits for search",
    )

    # Contact
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Contact email (PII); links patient portal accounts",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Contact phone (PII)",
    )

    birth_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Date of birth (PII)",
    )

    gender: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment="Self-declared gender",
    )

    address: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Street, number, complement, neighborhood, city, state, zipCode",
    )

    # Clinical summary
    allergies: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    conditions: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    medications: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)

    pipeline_status: Mapped[PipelineStatus] = mapped_column(
        enum_column(PipelineStatus, "pipeline_status"),
        nullable=False,
        default=PipelineStatus.LEAD,
        index=True,
        comment="Stage in the treatment funnel",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="User ID who registered the patient",
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "cpf_hash", name="uq_patients_organization_cpf"),
        Index("ix_patients_organization_created_at", "organization_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Patient id={self.id} ***{self.cpf_last_four}>"


class PatientDocument(BaseModel):
    """Document uploaded through the patient portal (stored in MinIO)."""

    __tablename__ = "patient_documents"

    patient_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Original filename")

    type: Mapped[DocumentType] = mapped_column(
        enum_column(DocumentType, "document_type"),
        nullable=False,
    )

    url: Mapped[str] = mapped_column(String(500), nullable=False, comment="Object storage key")
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(nullable=False, comment="Size in bytes")

    uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
