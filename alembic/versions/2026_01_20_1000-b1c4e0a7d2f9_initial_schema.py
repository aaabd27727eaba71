"""Initial schema

Revision ID: b1c4e0a7d2f9
Revises:
Create Date: 2026-01-20 10:00:00.000000-03:00

Creates every table of the current models:
1. Tenancy: organizations, users, memberships, doctor_profiles
2. Auth: refresh_tokens, otp_codes
3. Billing: plans, subscriptions
4. Clinical: patients, patient_documents, consultations, availabilities,
   blocked_slots, medical_records, cannabis_products, prescriptions,
   anvisa_reports
5. Compliance: audit_logs, legal_terms

Enums are stored as VARCHAR(32) with CHECK constraints, so later value
additions only touch the constraint.
"""
from typing import Sequence, Union

from alembic import op

from app.models import Base

# revision identifiers, used by Alembic.
revision: str = 'b1c4e0a7d2f9'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables, indexes and constraints."""
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    Base.metadata.drop_all(bind=op.get_bind())
