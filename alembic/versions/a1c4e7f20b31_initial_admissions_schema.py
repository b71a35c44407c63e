"""initial admissions schema

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. The students and financial_plans tables (referenced by enrollments)
2. The enrollments table with the one-live-enrollment-per-year partial index
3. Documents, installments and staff notifications owned by an enrollment
4. Guardian portal accounts and their student links
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c4e7f20b31"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS: dict[str, tuple[str, ...]] = {
    "enrollment_status": ("draft", "sent", "approved", "completed", "cancelled"),
    "student_status": ("active", "transferred", "inactive", "graduated"),
    "document_kind": (
        "student_id",
        "parent_id",
        "residency",
        "vaccination",
        "transfer",
        "photo",
        "contract_draft",
        "contract_signed",
    ),
    "document_status": ("pending", "uploaded", "approved", "rejected"),
    "installment_status": ("pending", "paid", "overdue", "cancelled"),
    "negotiation_type": ("discount", "surcharge"),
    "notification_kind": ("document_resubmitted", "enrollment_submitted"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all admissions tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "students",
        *_base_columns(),
        sa.Column("origin_enrollment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("cpf", sa.String(length=20), nullable=True),
        sa.Column("rg", sa.String(length=30), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("address", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("health_info", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "financial_responsible", postgresql.JSONB(astext_type=sa.Text()), nullable=False
        ),
        sa.Column("status", _enum("student_status"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("origin_enrollment_id"),
    )
    op.create_index("ix_students_name", "students", ["name"])
    op.create_index("ix_students_cpf", "students", ["cpf"])

    op.create_table(
        "financial_plans",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("total_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("installments_count", sa.Integer(), nullable=False),
        sa.Column("due_day", sa.Integer(), server_default=sa.text("5"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "enrollments",
        *_base_columns(),
        sa.Column("invite_token_hash", sa.String(length=64), nullable=False),
        sa.Column("candidate_name", sa.String(length=200), nullable=False),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("parent_name", sa.String(length=200), nullable=True),
        sa.Column("parent_email", sa.String(length=255), nullable=True),
        sa.Column("parent_phone", sa.String(length=30), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", _enum("enrollment_status"), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("financial_plan_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column(
            "student_sync_pending",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["financial_plan_id"], ["financial_plans.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invite_token_hash"),
    )
    op.create_index("ix_enrollments_status", "enrollments", ["status"])
    op.create_index("ix_enrollments_academic_year", "enrollments", ["academic_year"])
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    # One live enrollment per student and year
    op.create_index(
        "uq_enrollments_student_year_active",
        "enrollments",
        ["student_id", "academic_year"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled' AND student_id IS NOT NULL"),
    )

    op.create_table(
        "enrollment_documents",
        *_base_columns(),
        sa.Column("enrollment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", _enum("document_kind"), nullable=False),
        sa.Column("status", _enum("document_status"), nullable=False),
        sa.Column("storage_ref", sa.String(length=500), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("enrollment_id", "kind", name="uq_enrollment_documents_kind"),
    )
    op.create_index(
        "ix_enrollment_documents_enrollment_id", "enrollment_documents", ["enrollment_id"]
    )

    op.create_table(
        "installments",
        *_base_columns(),
        sa.Column("enrollment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("surcharge_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("installment_status"), nullable=False),
        sa.Column(
            "is_published", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("negotiation_type", _enum("negotiation_type"), nullable=True),
        sa.Column("negotiation_notes", sa.Text(), nullable=True),
        sa.Column("negotiation_date", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "enrollment_id", "installment_number", name="uq_installments_enrollment_number"
        ),
    )
    op.create_index("ix_installments_enrollment_id", "installments", ["enrollment_id"])

    op.create_table(
        "admin_notifications",
        *_base_columns(),
        sa.Column("kind", _enum("notification_kind"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(length=500), nullable=True),
        sa.Column("enrollment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_admin_notifications_unread", "admin_notifications", ["is_read", "created_at"]
    )

    op.create_table(
        "guardians",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column(
            "must_change_password",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_guardians_email", "guardians", ["email"], unique=True)

    op.create_table(
        "guardian_students",
        sa.Column("guardian_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["guardian_id"], ["guardians.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("guardian_id", "student_id"),
    )


def downgrade() -> None:
    """Drop all admissions tables and enum types."""
    op.drop_table("guardian_students")
    op.drop_index("ix_guardians_email", table_name="guardians")
    op.drop_table("guardians")
    op.drop_index("ix_admin_notifications_unread", table_name="admin_notifications")
    op.drop_table("admin_notifications")
    op.drop_index("ix_installments_enrollment_id", table_name="installments")
    op.drop_table("installments")
    op.drop_index("ix_enrollment_documents_enrollment_id", table_name="enrollment_documents")
    op.drop_table("enrollment_documents")
    op.drop_index("uq_enrollments_student_year_active", table_name="enrollments")
    op.drop_index("ix_enrollments_student_id", table_name="enrollments")
    op.drop_index("ix_enrollments_academic_year", table_name="enrollments")
    op.drop_index("ix_enrollments_status", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_table("financial_plans")
    op.drop_index("ix_students_cpf", table_name="students")
    op.drop_index("ix_students_name", table_name="students")
    op.drop_table("students")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
