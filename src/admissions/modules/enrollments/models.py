"""
Enrollment Models

An enrollment is one candidate's admission for one academic year. It is
created by staff, filled in by the parent through an invitation link and
finally approved into a student record.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions.modules.shared import BaseModel

if TYPE_CHECKING:
    from admissions.modules.documents.models import EnrollmentDocument


class EnrollmentStatus(str, enum.Enum):
    """Lifecycle status of an enrollment."""

    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EnrollmentMode(str, enum.Enum):
    """What the parent-facing view should show. Derived, never stored."""

    WIZARD = "wizard"
    ANALYSIS = "analysis"
    ACTION_REQUIRED = "action_required"
    SUCCESS = "success"


class EnrollmentType(str, enum.Enum):
    """Stored in ``details.enrollment_type``."""

    NEW = "new"
    RENEWAL = "renewal"


class Enrollment(BaseModel):
    """
    Admission record for a single candidate and academic year.

    ``details`` holds the free-form data collected by the parent wizard
    (identity numbers, address, health, authorized pickups). Assign a new
    dict to it when changing keys so the ORM detects the change.
    """

    __tablename__ = "enrollments"

    invite_token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    candidate_name: Mapped[str] = mapped_column(String(200), nullable=False)
    academic_year: Mapped[int] = mapped_column(Integer, nullable=False)

    parent_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    parent_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    status: Mapped[EnrollmentStatus] = mapped_column(
        Enum(
            EnrollmentStatus,
            name="enrollment_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=EnrollmentStatus.DRAFT,
    )

    # ON DELETE RESTRICT: students are never deleted from here
    student_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="RESTRICT"),
        nullable=True,
    )
    financial_plan_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("financial_plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Optimistic concurrency counter, bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Set when an edit must still be propagated to the linked student
    student_sync_pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    documents: Mapped[list["EnrollmentDocument"]] = relationship(
        "EnrollmentDocument",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        Index("ix_enrollments_status", "status"),
        Index("ix_enrollments_academic_year", "academic_year"),
        Index("ix_enrollments_student_id", "student_id"),
        # One live enrollment per student and year
        Index(
            "uq_enrollments_student_year_active",
            "student_id",
            "academic_year",
            unique=True,
            postgresql_where=text("status <> 'cancelled' AND student_id IS NOT NULL"),
        ),
    )
