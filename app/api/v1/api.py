"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    anvisa_reports,
    auth,
    availability,
    billing,
    consultations,
    dashboard,
    legal_terms,
    medical_records,
    organizations,
    patient_portal,
    patients,
    prescriptions,
    super_admin,
    users,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
api_router.include_router(patients.router, prefix="/patients", tags=["Patients"])
api_router.include_router(consultations.router, prefix="/consultations", tags=["Consultations"])
api_router.include_router(availability.router, prefix="/availability", tags=["Availability"])
api_router.include_router(medical_records.router, prefix="/medical-records", tags=["Medical Records"])
api_router.include_router(prescriptions.router, prefix="/prescriptions", tags=["Prescriptions"])
api_router.include_router(prescriptions.products_router, prefix="/products/cannabis", tags=["Products"])
api_router.include_router(anvisa_reports.router, prefix="/anvisa-reports", tags=["ANVISA Reports"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
api_router.include_router(billing.router, prefix="/billing", tags=["Billing"])
api_router.include_router(patient_portal.router, prefix="/patient-portal", tags=["Patient Portal"])
api_router.include_router(super_admin.router, prefix="/super-admin", tags=["Super Admin"])
api_router.include_router(legal_terms.router, prefix="/legal-terms", tags=["Legal Terms"])
