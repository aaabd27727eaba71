"""Platform-wide back-office queries for super admins."""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import Select, exists, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from app.models import (
    AnvisaReport,
    AuditAction,
    AuditLog,
    BillingCycle,
    Consultation,
    ConsultationStatus,
    DoctorProfile,
    MedicalRecord,
    Membership,
    Organization,
    OrganizationType,
    Patient,
    PatientDocument,
    PipelineStatus,
    Prescription,
    Subscription,
    SubscriptionStatus,
    User,
)
from app.schemas.common import build_pagination
from app.schemas.organization import SubscriptionResponse
from app.schemas.patient import PatientDocumentResponse
from app.schemas.super_admin import (
    AdminConsultation,
    AdminConsultationList,
    AdminDoctor,
    AdminDoctorDetail,
    AdminDoctorList,
    AdminDoctorPatient,
    AdminDoctorPatientList,
    AdminMedicalRecord,
    AdminMembership,
    AdminOrganization,
    AdminOrganizationList,
    AdminOrganizationRef,
    AdminPatient,
    AdminPatientDetail,
    AdminPatientList,
    AdminPatientRef,
    AdminPrescription,
    AdminPrescriptionList,
    AdminReport,
    AdminReportList,
    AdminUser,
    AuditLogList,
    AuditLogResponse,
    AuditUser,
    DoctorCounts,
    DoctorDetailStats,
    DoctorPatientCounts,
    OrganizationStats,
    PatientCounts,
    PatientDetailStats,
    PlatformStats,
    SubscriptionTotals,
)
from app.utils.timezones import day_bounds

logger = logging.getLogger(__name__)

DETAIL_LIST_LIMIT = 10


def _patient_ref(patient: Patient) -> AdminPatientRef:
    return AdminPatientRef(id=patient.id, name=patient.name, email=patient.email)


def _consultation(c: Consultation) -> AdminConsultation:
    return AdminConsultation(
        id=c.id,
        type=c.type,
        status=c.status,
        scheduled_at=c.scheduled_at,
        duration=c.duration,
        started_at=c.started_at,
        ended_at=c.ended_at,
        patient=_patient_ref(c.patient),
        doctor_name=c.doctor.user.name,
    )


def _prescription(p: Prescription) -> AdminPrescription:
    return AdminPrescription(
        id=p.id,
        product_name=p.product_name,
        concentration=p.concentration,
        dosage=p.dosage,
        quantity=p.quantity,
        valid_until=p.valid_until,
        status=p.status,
        signed_at=p.signed_at,
        created_at=p.created_at,
        patient=_patient_ref(p.patient),
        doctor_name=p.doctor.user.name,
    )


def _report(r: AnvisaReport) -> AdminReport:
    return AdminReport(
        id=r.id,
        status=r.status,
        protocol_number=r.protocol_number,
        signed_at=r.signed_at,
        submitted_at=r.submitted_at,
        expires_at=r.expires_at,
        created_at=r.created_at,
        patient=_patient_ref(r.patient),
        doctor_name=r.doctor.user.name,
    )


class SuperAdminService:
    """Cross-tenant reads. No organization scoping applies here."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _count(self, stmt: Select) -> int:
        return await self.db.scalar(stmt) or 0

    async def _counts_by(
        self, column: InstrumentedAttribute, ids: list[UUID], *conditions: Any
    ) -> dict[UUID, int]:
        """Row counts grouped by a foreign key, restricted to `ids`."""
        if not ids:
            return {}
        rows = await self.db.execute(
            select(column, func.count()).where(column.in_(ids), *conditions).group_by(column)
        )
        return {row[0]: row[1] for row in rows}

    async def _status_counts(self, *conditions: Any) -> dict[str, int]:
        rows = await self.db.execute(
            select(Consultation.status, func.count(Consultation.id))
            .where(*conditions)
            .group_by(Consultation.status)
        )
        return {row[0].value: row[1] for row in rows}

    async def _latest_subscriptions(self, organization_ids: list[UUID]) -> dict[UUID, Subscription]:
        if not organization_ids:
            return {}
        subscriptions = await self.db.scalars(
            select(Subscription)
            .where(Subscription.organization_id.in_(organization_ids))
            .order_by(Subscription.created_at.asc())
        )
        # Later rows overwrite earlier ones
        return {s.organization_id: s for s in subscriptions}

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    async def dashboard(self) -> PlatformStats:
        active_subscriptions = (
            await self.db.scalars(
                select(Subscription).where(Subscription.status == SubscriptionStatus.ACTIVE)
            )
        ).all()

        revenue = 0.0
        for subscription in active_subscriptions:
            if subscription.billing_cycle == BillingCycle.MONTHLY:
                revenue += float(subscription.plan.price_monthly)
            else:
                revenue += float(subscription.plan.price_yearly) / 12

        return PlatformStats(
            total_doctors=await self._count(select(func.count(DoctorProfile.id))),
            total_patients=await self._count(select(func.count(Patient.id))),
            total_consultations=await self._count(select(func.count(Consultation.id))),
            total_organizations=await self._count(select(func.count(Organization.id))),
            subscriptions=SubscriptionTotals(
                active=len(active_subscriptions),
                trial=await self._count(
                    select(func.count(Subscription.id)).where(
                        Subscription.status == SubscriptionStatus.TRIAL
                    )
                ),
            ),
            consultations_by_status=await self._status_counts(),
            estimated_monthly_revenue=round(revenue, 2),
        )

    # ------------------------------------------------------------------
    # Doctors
    # ------------------------------------------------------------------

    async def _doctor_counts(self, doctor_ids: list[UUID]) -> dict[UUID, DoctorCounts]:
        consultations = await self._counts_by(Consultation.doctor_id, doctor_ids)
        records = await self._counts_by(MedicalRecord.doctor_id, doctor_ids)
        prescriptions = await self._counts_by(Prescription.doctor_id, doctor_ids)
        reports = await self._counts_by(AnvisaReport.doctor_id, doctor_ids)
        return {
            doctor_id: DoctorCounts(
                consultations=consultations.get(doctor_id, 0),
                medical_records=records.get(doctor_id, 0),
                prescriptions=prescriptions.get(doctor_id, 0),
                anvisa_reports=reports.get(doctor_id, 0),
            )
            for doctor_id in doctor_ids
        }

    async def _memberships(
        self, user_ids: list[UUID], with_subscription: bool = False
    ) -> dict[UUID, list[AdminMembership]]:
        if not user_ids:
            return {}
        memberships = (
            await self.db.scalars(
                select(Membership)
                .where(Membership.user_id.in_(user_ids))
                .order_by(Membership.created_at.asc())
            )
        ).all()

        subscriptions: dict[UUID, Subscription] = {}
        if with_subscription:
            subscriptions = await self._latest_subscriptions(
                list({m.organization_id for m in memberships})
            )

        result: dict[UUID, list[AdminMembership]] = {}
        for membership in memberships:
            subscription = subscriptions.get(membership.organization_id)
            result.setdefault(membership.user_id, []).append(
                AdminMembership(
                    id=membership.id,
                    role=membership.role,
                    is_active=membership.is_active,
                    organization=AdminOrganizationRef.model_validate(membership.organization),
                    subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
                )
            )
        return result

    async def list_doctors(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        doctor_status: str = "all",
    ) -> AdminDoctorList:
        conditions = []
        if search:
            term = f"%{search}%"
            conditions.append(or_(User.name.ilike(term), User.email.ilike(term), DoctorProfile.crm.ilike(term)))

        has_active_membership = exists().where(
            Membership.user_id == DoctorProfile.user_id, Membership.is_active.is_(True)
        )
        if doctor_status == "active":
            conditions.append(has_active_membership)
        elif doctor_status == "inactive":
            conditions.append(not_(has_active_membership))

        base = select(DoctorProfile).join(User, User.id == DoctorProfile.user_id).where(*conditions)
        total = await self._count(
            select(func.count(DoctorProfile.id))
            .select_from(DoctorProfile)
            .join(User, User.id == DoctorProfile.user_id)
            .where(*conditions)
        )
        doctors = (
            await self.db.scalars(
                base.order_by(DoctorProfile.created_at.desc()).offset((page - 1) * limit).limit(limit)
            )
        ).all()

        counts = await self._doctor_counts([d.id for d in doctors])
        memberships = await self._memberships([d.user_id for d in doctors])

        return AdminDoctorList(
            doctors=[
                AdminDoctor(
                    id=d.id,
                    crm=d.crm,
                    uf_crm=d.uf_crm,
                    specialty=d.specialty,
                    crm_verified=d.crm_verified,
                    user=AdminUser.model_validate(d.user),
                    memberships=memberships.get(d.user_id, []),
                    stats=counts[d.id],
                    created_at=d.created_at,
                )
                for d in doctors
            ],
            pagination=build_pagination(total, page, limit),
        )

    async def _get_doctor(self, doctor_id: UUID) -> DoctorProfile:
        doctor = await self.db.get(DoctorProfile, doctor_id)
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medico nao encontrado")
        return doctor

    async def doctor_detail(self, doctor_id: UUID) -> AdminDoctorDetail:
        doctor = await self._get_doctor(doctor_id)
        counts = await self._doctor_counts([doctor.id])
        memberships = await self._memberships([doctor.user_id], with_subscription=True)

        treated = exists().where(Consultation.patient_id == Patient.id, Consultation.doctor_id == doctor.id)
        return AdminDoctorDetail(
            id=doctor.id,
            crm=doctor.crm,
            uf_crm=doctor.uf_crm,
            specialty=doctor.specialty,
            crm_verified=doctor.crm_verified,
            user=AdminUser.model_validate(doctor.user),
            memberships=memberships.get(doctor.user_id, []),
            stats=counts[doctor.id],
            created_at=doctor.created_at,
            detail_stats=DoctorDetailStats(
                total_consultations=counts[doctor.id].consultations,
                completed_consultations=await self._count(
                    select(func.count(Consultation.id)).where(
                        Consultation.doctor_id == doctor.id,
                        Consultation.status == ConsultationStatus.COMPLETED,
                    )
                ),
                total_patients=await self._count(select(func.count(Patient.id)).where(treated)),
                total_prescriptions=counts[doctor.id].prescriptions,
                total_reports=counts[doctor.id].anvisa_reports,
                consultations_by_status=await self._status_counts(Consultation.doctor_id == doctor.id),
            ),
        )

    async def doctor_patients(
        self, doctor_id: UUID, page: int = 1, limit: int = 10, search: Optional[str] = None
    ) -> AdminDoctorPatientList:
        doctor = await self._get_doctor(doctor_id)
        conditions = [
            exists().where(Consultation.patient_id == Patient.id, Consultation.doctor_id == doctor.id)
        ]
        if search:
            term = f"%{search}%"
            conditions.append(or_(Patient.name.ilike(term), Patient.email.ilike(term)))

        total = await self._count(select(func.count(Patient.id)).where(*conditions))
        patients = (
            await self.db.scalars(
                select(Patient)
                .where(*conditions)
                .order_by(Patient.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()

        ids = [p.id for p in patients]
        consultations = await self._counts_by(Consultation.patient_id, ids, Consultation.doctor_id == doctor.id)
        prescriptions = await self._counts_by(Prescription.patient_id, ids, Prescription.doctor_id == doctor.id)
        reports = await self._counts_by(AnvisaReport.patient_id, ids, AnvisaReport.doctor_id == doctor.id)

        return AdminDoctorPatientList(
            patients=[
                AdminDoctorPatient(
                    id=p.id,
                    name=p.name,
                    email=p.email,
                    phone=p.phone,
                    cpf_last_four=p.cpf_last_four,
                    birth_date=p.birth_date,
                    pipeline_status=p.pipeline_status,
                    created_at=p.created_at,
                    stats=DoctorPatientCounts(
                        consultations=consultations.get(p.id, 0),
                        prescriptions=prescriptions.get(p.id, 0),
                        anvisa_reports=reports.get(p.id, 0),
                    ),
                )
                for p in patients
            ],
            pagination=build_pagination(total, page, limit),
        )

    async def doctor_consultations(
        self,
        doctor_id: UUID,
        page: int = 1,
        limit: int = 10,
        consultation_status: Optional[ConsultationStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> AdminConsultationList:
        doctor = await self._get_doctor(doctor_id)
        conditions = [Consultation.doctor_id == doctor.id]
        if consultation_status is not None:
            conditions.append(Consultation.status == consultation_status)
        if start_date is not None:
            conditions.append(Consultation.scheduled_at >= day_bounds(start_date)[0])
        if end_date is not None:
            conditions.append(Consultation.scheduled_at < day_bounds(end_date)[1])

        total = await self._count(select(func.count(Consultation.id)).where(*conditions))
        consultations = await self.db.scalars(
            select(Consultation)
            .where(*conditions)
            .order_by(Consultation.scheduled_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return AdminConsultationList(
            consultations=[_consultation(c) for c in consultations],
            pagination=build_pagination(total, page, limit),
        )

    async def doctor_reports(
        self, doctor_id: UUID, page: int = 1, limit: int = 10, report_status: Optional[Any] = None
    ) -> AdminReportList:
        doctor = await self._get_doctor(doctor_id)
        conditions = [AnvisaReport.doctor_id == doctor.id]
        if report_status is not None:
            conditions.append(AnvisaReport.status == report_status)

        total = await self._count(select(func.count(AnvisaReport.id)).where(*conditions))
        reports = await self.db.scalars(
            select(AnvisaReport)
            .where(*conditions)
            .order_by(AnvisaReport.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return AdminReportList(reports=[_report(r) for r in reports], pagination=build_pagination(total, page, limit))

    async def doctor_prescriptions(
        self, doctor_id: UUID, page: int = 1, limit: int = 10, prescription_status: Optional[Any] = None
    ) -> AdminPrescriptionList:
        doctor = await self._get_doctor(doctor_id)
        conditions = [Prescription.doctor_id == doctor.id]
        if prescription_status is not None:
            conditions.append(Prescription.status == prescription_status)

        total = await self._count(select(func.count(Prescription.id)).where(*conditions))
        prescriptions = await self.db.scalars(
            select(Prescription)
            .where(*conditions)
            .order_by(Prescription.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return AdminPrescriptionList(
            prescriptions=[_prescription(p) for p in prescriptions],
            pagination=build_pagination(total, page, limit),
        )

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    async def list_organizations(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        organization_type: Optional[OrganizationType] = None,
    ) -> AdminOrganizationList:
        conditions = []
        if search:
            term = f"%{search}%"
            conditions.append(or_(Organization.name.ilike(term), Organization.slug.ilike(term)))
        if organization_type is not None:
            conditions.append(Organization.type == organization_type)

        total = await self._count(select(func.count(Organization.id)).where(*conditions))
        organizations = (
            await self.db.scalars(
                select(Organization)
                .where(*conditions)
                .order_by(Organization.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()

        ids = [o.id for o in organizations]
        members = await self._counts_by(Membership.organization_id, ids)
        patients = await self._counts_by(Patient.organization_id, ids)
        consultations = await self._counts_by(Consultation.organization_id, ids)
        subscriptions = await self._latest_subscriptions(ids)

        return AdminOrganizationList(
            organizations=[
                AdminOrganization(
                    id=o.id,
                    name=o.name,
                    slug=o.slug,
                    type=o.type,
                    email=o.email,
                    phone=o.phone,
                    is_active=o.is_active,
                    created_at=o.created_at,
                    current_subscription=(
                        SubscriptionResponse.model_validate(subscriptions[o.id]) if o.id in subscriptions else None
                    ),
                    stats=OrganizationStats(
                        members=members.get(o.id, 0),
                        patients=patients.get(o.id, 0),
                        consultations=consultations.get(o.id, 0),
                    ),
                )
                for o in organizations
            ],
            pagination=build_pagination(total, page, limit),
        )

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    async def _admin_patients(self, patients: list[Patient]) -> list[AdminPatient]:
        ids = [p.id for p in patients]
        consultations = await self._counts_by(Consultation.patient_id, ids)
        prescriptions = await self._counts_by(Prescription.patient_id, ids)
        reports = await self._counts_by(AnvisaReport.patient_id, ids)
        records = await self._counts_by(MedicalRecord.patient_id, ids)

        organizations = {}
        if ids:
            organization_ids = list({p.organization_id for p in patients})
            organizations = {
                o.id: AdminOrganizationRef.model_validate(o)
                for o in await self.db.scalars(select(Organization).where(Organization.id.in_(organization_ids)))
            }

        documents: dict[UUID, list[PatientDocumentResponse]] = {}
        if ids:
            for document in await self.db.scalars(
                select(PatientDocument)
                .where(PatientDocument.patient_id.in_(ids))
                .order_by(PatientDocument.uploaded_at.desc())
            ):
                documents.setdefault(document.patient_id, []).append(
                    PatientDocumentResponse.model_validate(document)
                )

        return [
            AdminPatient(
                id=p.id,
                name=p.name,
                email=p.email,
                phone=p.phone,
                cpf_last_four=p.cpf_last_four,
                birth_date=p.birth_date,
                gender=p.gender,
                address=p.address,
                allergies=p.allergies,
                conditions=p.conditions,
                medications=p.medications,
                pipeline_status=p.pipeline_status,
                organization=organizations[p.organization_id],
                documents=documents.get(p.id, []),
                stats=PatientCounts(
                    consultations=consultations.get(p.id, 0),
                    prescriptions=prescriptions.get(p.id, 0),
                    anvisa_reports=reports.get(p.id, 0),
                    medical_records=records.get(p.id, 0),
                ),
                created_at=p.created_at,
                updated_at=p.updated_at,
            )
            for p in patients
        ]

    async def list_patients(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        pipeline_status: Optional[PipelineStatus] = None,
    ) -> AdminPatientList:
        conditions = []
        if search:
            term = f"%{search}%"
            conditions.append(
                or_(Patient.name.ilike(term), Patient.email.ilike(term), Patient.cpf_last_four.like(term))
            )
        if pipeline_status is not None:
            conditions.append(Patient.pipeline_status == pipeline_status)

        total = await self._count(select(func.count(Patient.id)).where(*conditions))
        patients = (
            await self.db.scalars(
                select(Patient)
                .where(*conditions)
                .order_by(Patient.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()

        return AdminPatientList(
            patients=await self._admin_patients(list(patients)),
            pagination=build_pagination(total, page, limit),
        )

    async def patient_detail(self, patient_id: UUID) -> AdminPatientDetail:
        patient = await self.db.get(Patient, patient_id)
        if patient is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente nao encontrado")

        (summary,) = await self._admin_patients([patient])

        consultations = await self.db.scalars(
            select(Consultation)
            .where(Consultation.patient_id == patient.id)
            .order_by(Consultation.scheduled_at.desc())
            .limit(DETAIL_LIST_LIMIT)
        )
        prescriptions = await self.db.scalars(
            select(Prescription)
            .where(Prescription.patient_id == patient.id)
            .order_by(Prescription.created_at.desc())
            .limit(DETAIL_LIST_LIMIT)
        )
        reports = await self.db.scalars(
            select(AnvisaReport)
            .where(AnvisaReport.patient_id == patient.id)
            .order_by(AnvisaReport.created_at.desc())
            .limit(DETAIL_LIST_LIMIT)
        )
        records = await self.db.scalars(
            select(MedicalRecord)
            .where(MedicalRecord.patient_id == patient.id)
            .order_by(MedicalRecord.created_at.desc())
            .limit(DETAIL_LIST_LIMIT)
        )

        completed = await self._count(
            select(func.count(Consultation.id)).where(
                Consultation.patient_id == patient.id,
                Consultation.status == ConsultationStatus.COMPLETED,
            )
        )

        return AdminPatientDetail(
            **summary.model_dump(),
            consultations=[_consultation(c) for c in consultations],
            prescriptions=[_prescription(p) for p in prescriptions],
            anvisa_reports=[_report(r) for r in reports],
            medical_records=[
                AdminMedicalRecord(
                    id=r.id,
                    template_type=r.template_type,
                    status=r.status,
                    signed_at=r.signed_at,
                    created_at=r.created_at,
                    doctor_name=r.doctor.user.name,
                )
                for r in records
            ],
            detail_stats=PatientDetailStats(
                total_consultations=summary.stats.consultations,
                completed_consultations=completed,
                total_prescriptions=summary.stats.prescriptions,
                total_reports=summary.stats.anvisa_reports,
                total_records=summary.stats.medical_records,
            ),
        )

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    async def audit_logs(
        self,
        page: int = 1,
        limit: int = 50,
        action: Optional[AuditAction] = None,
        entity: Optional[str] = None,
        user_id: Optional[UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> AuditLogList:
        conditions = []
        if action is not None:
            conditions.append(AuditLog.action == action)
        if entity:
            conditions.append(AuditLog.entity == entity)
        if user_id is not None:
            conditions.append(AuditLog.user_id == user_id)
        if start_date is not None:
            conditions.append(AuditLog.created_at >= day_bounds(start_date)[0])
        if end_date is not None:
            conditions.append(AuditLog.created_at < day_bounds(end_date)[1])

        total = await self._count(select(func.count(AuditLog.id)).where(*conditions))
        logs = await self.db.scalars(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return AuditLogList(
            logs=[
                AuditLogResponse(
                    id=log.id,
                    organization_id=log.organization_id,
                    user_id=log.user_id,
                    action=log.action,
                    entity=log.entity,
                    entity_id=log.entity_id,
                    old_data=log.old_data,
                    new_data=log.new_data,
                    metadata=log.audit_metadata,
                    ip_address=log.ip_address,
                    user_agent=log.user_agent,
                    created_at=log.created_at,
                    user=AuditUser.model_validate(log.user) if log.user else None,
                )
                for log in logs
            ],
            pagination=build_pagination(total, page, limit),
        )
