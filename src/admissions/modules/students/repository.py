"""
Student Repository

Database operations for student records.
"""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.modules.students.models import Student, StudentStatus

logger = logging.getLogger(__name__)


class StudentRepository:
    """Repository for student database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        origin_enrollment_id: UUID,
        name: str,
        cpf: str | None = None,
        rg: str | None = None,
        birth_date: date | None = None,
        address: dict | None = None,
        health_info: dict | None = None,
        financial_responsible: dict | None = None,
    ) -> Student:
        """
        Create a new student record.

        Args:
            db: Database session
            origin_enrollment_id: Enrollment being approved
            name: Student name
            cpf: Student tax id (optional)
            rg: Student identity number (optional)
            birth_date: Date of birth (optional)
            address: Address fields
            health_info: Blood type, allergies and insurance
            financial_responsible: Name, cpf, e-mail and phone of the payer

        Returns:
            Created Student instance
        """
        student = Student(
            origin_enrollment_id=origin_enrollment_id,
            name=name,
            cpf=cpf,
            rg=rg,
            birth_date=birth_date,
            address=address or {},
            health_info=health_info or {},
            financial_responsible=financial_responsible or {},
            status=StudentStatus.ACTIVE,
        )

        db.add(student)
        await db.flush()
        await db.refresh(student)

        logger.info(f"Created student: {student.id} - {student.name}")
        return student

    @staticmethod
    async def get_by_id(db: AsyncSession, student_id: UUID) -> Student | None:
        """Get a student by ID."""
        result = await db.execute(select(Student).where(Student.id == student_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def update_fields(db: AsyncSession, student: Student, **fields) -> Student:
        """Overwrite biographical fields of a student."""
        for key, value in fields.items():
            if hasattr(student, key):
                setattr(student, key, value)

        await db.flush()
        return student

    @staticmethod
    async def update_status(
        db: AsyncSession,
        student_id: UUID,
        status: StudentStatus,
    ) -> Student | None:
        """
        Update a student's status.

        Returns:
            Updated Student instance or None if not found
        """
        student = await StudentRepository.get_by_id(db, student_id)
        if not student:
            return None

        student.status = status
        await db.flush()

        logger.info(f"Updated student {student_id} status to {status.value}")
        return student
