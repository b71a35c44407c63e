"""
Guardian Repository

Database operations for guardian portal accounts.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.modules.guardians.models import Guardian, guardian_students

logger = logging.getLogger(__name__)


class GuardianRepository:
    """Repository for guardian database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        name: str | None = None,
        must_change_password: bool = True,
    ) -> Guardian:
        """
        Create a new guardian account.

        Args:
            db: Database session
            email: Login e-mail (unique, stored lowercase)
            password_hash: bcrypt hash
            name: Display name (optional)
            must_change_password: Force a password change on first login

        Returns:
            Created Guardian instance
        """
        guardian = Guardian(
            email=email.lower(),
            name=name,
            password_hash=password_hash,
            must_change_password=must_change_password,
        )

        db.add(guardian)
        await db.flush()
        await db.refresh(guardian)

        logger.info(f"Created guardian account: {guardian.id}")
        return guardian

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Guardian | None:
        """Get a guardian by e-mail (case-insensitive)."""
        result = await db.execute(select(Guardian).where(Guardian.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def link_student(db: AsyncSession, guardian_id: UUID, student_id: UUID) -> bool:
        """
        Link a guardian to a student. Linking twice is a no-op.

        Returns:
            True if a new link was created
        """
        stmt = (
            insert(guardian_students)
            .values(guardian_id=guardian_id, student_id=student_id)
            .on_conflict_do_nothing(index_elements=["guardian_id", "student_id"])
        )
        result = await db.execute(stmt)
        return result.rowcount > 0
