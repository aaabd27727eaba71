"""Medical record schemas."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from app.models import RecordStatus, TemplateType
from app.schemas.common import CamelModel, RequestModel, TenantRequestModel

# ============================================================================
# Clinical data
# ============================================================================


class VitalSigns(RequestModel):
    blood_pressure: Optional[str] = None
    heart_rate: Optional[float] = None
    temperature: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None


class DiagnosisEntry(RequestModel):
    icd10_code: str = Field(min_length=1)
    description: str = Field(min_length=1)


class CannabisRecommendation(RequestModel):
    product_type: str = Field(min_length=1)
    concentration: str = Field(min_length=1)
    administration: str = Field(min_length=1)
    starting_dose: str = Field(min_length=1)
    titration: str = Field(min_length=1)
    duration: str = Field(min_length=1)


class ClinicalData(RequestModel):
    """
    Clinical fields shared by all templates.

    Stored as camelCase JSON; which fields are shown depends on the
    template sections.
    """

    chief_complaint: Optional[str] = None
    history_of_present_illness: Optional[str] = None
    past_medical_history: Optional[str] = None
    family_history: Optional[str] = None
    social_history: Optional[str] = None
    previous_cannabis_use: Optional[bool] = None
    previous_cannabis_experience: Optional[str] = None
    current_medications: Optional[list[str]] = None
    allergies: Optional[list[str]] = None
    vital_signs: Optional[VitalSigns] = None
    physical_exam: Optional[str] = None
    primary_diagnosis: Optional[DiagnosisEntry] = None
    secondary_diagnoses: Optional[list[DiagnosisEntry]] = None
    treatment_plan: Optional[str] = None
    cannabis_recommendation: Optional[CannabisRecommendation] = None
    follow_up_instructions: Optional[str] = None
    next_appointment: Optional[str] = None
    current_dose: Optional[str] = None
    new_dose: Optional[str] = None
    adjustment_reason: Optional[str] = None
    side_effects: Optional[list[str]] = None
    effectiveness: Optional[float] = None
    treatment_response: Optional[str] = None
    quality_of_life: Optional[float] = None
    pain_level: Optional[float] = None
    sleep_quality: Optional[float] = None
    notes: Optional[str] = None

    def to_storage(self) -> dict[str, Any]:
        """camelCase dict of the fields that were sent."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# ============================================================================
# Requests
# ============================================================================


class MedicalRecordCreate(TenantRequestModel):
    consultation_id: UUID
    template_type: TemplateType
    clinical_data: ClinicalData


class MedicalRecordUpdate(TenantRequestModel):
    clinical_data: Optional[ClinicalData] = None


# ============================================================================
# Responses
# ============================================================================


class TemplateSection(CamelModel):
    id: str
    title: str
    fields: list[str]


class TemplateStructure(CamelModel):
    sections: list[TemplateSection]


class RecordPatient(CamelModel):
    id: UUID
    name: str
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    allergies: list[Any] = []
    conditions: list[Any] = []
    medications: list[Any] = []
    cpf: Optional[str] = None


class RecordDoctorUser(CamelModel):
    name: str
    email: str


class RecordDoctor(CamelModel):
    id: UUID
    crm: str
    uf_crm: str
    specialty: Optional[str] = None
    user: RecordDoctorUser


class MedicalRecordResponse(CamelModel):
    id: UUID
    organization_id: UUID
    consultation_id: UUID
    patient_id: UUID
    doctor_id: UUID
    template_type: TemplateType
    clinical_data: dict[str, Any]
    status: RecordStatus
    signature_hash: Optional[str] = None
    signed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class MedicalRecordDetailResponse(MedicalRecordResponse):
    patient: RecordPatient
    doctor: RecordDoctor
