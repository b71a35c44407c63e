"""
Student Models

The official student record, provisioned once when an enrollment is approved.
"""

import uuid
from datetime import date
from enum import Enum

from sqlalchemy import Date, String
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from admissions.modules.shared import BaseModel


class StudentStatus(str, Enum):
    """Status of a student record."""

    ACTIVE = "active"
    TRANSFERRED = "transferred"
    INACTIVE = "inactive"
    GRADUATED = "graduated"


class Student(BaseModel):
    """
    Student record.

    Biographical fields mirror the enrollment that created the student and
    are kept in sync on a best-effort basis when that enrollment is edited.
    """

    __tablename__ = "students"

    # Enrollment that provisioned this record (no FK to avoid a cycle with enrollments)
    origin_enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    cpf: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    rg: Mapped[str | None] = mapped_column(String(30), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    address: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    health_info: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    financial_responsible: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    status: Mapped[StudentStatus] = mapped_column(
        ENUM(
            StudentStatus,
            name="student_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=StudentStatus.ACTIVE,
        nullable=False,
    )
