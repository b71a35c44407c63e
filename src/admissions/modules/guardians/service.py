"""
Guardian Access Service

Provisions guardian portal access for the financial responsible of an
approved student. An existing account with the same e-mail is linked to
the new student instead of being duplicated; a new account gets a
temporary password which is e-mailed to the guardian.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.email import send_guardian_access
from admissions.core.errors import NotFoundError, ValidationError
from admissions.core.security import generate_temporary_password, hash_password
from admissions.modules.guardians.repository import GuardianRepository
from admissions.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


@dataclass
class GuardianAccessResult:
    guardian_id: UUID
    created: bool
    email_sent: bool


def _normalize_email(email: str | None) -> str:
    try:
        return str(_email_adapter.validate_python((email or "").strip())).lower()
    except PydanticValidationError as e:
        raise ValidationError(
            "A valid e-mail address is required for guardian access.",
            error_code="INVALID_GUARDIAN_EMAIL",
        ) from e


async def create_guardian_account(
    db: AsyncSession,
    student_id: UUID,
    email: str,
    password: str | None = None,
    name: str | None = None,
) -> GuardianAccessResult:
    """
    Give a guardian portal access to a student.

    Args:
        db: Database session
        student_id: Student the guardian is responsible for
        email: Guardian login e-mail
        password: Initial password (a temporary one is generated if omitted)
        name: Guardian display name

    Returns:
        GuardianAccessResult with the guardian id and whether it was created

    Raises:
        ValidationError: If the e-mail is invalid
        NotFoundError: If the student doesn't exist
    """
    email = _normalize_email(email)

    student = await StudentRepository.get_by_id(db, student_id)
    if student is None:
        raise NotFoundError("Student", student_id)

    guardian = await GuardianRepository.get_by_email(db, email)
    temp_password = None
    created = False

    try:
        if guardian is None:
            temp_password = password or generate_temporary_password()
            guardian = await GuardianRepository.create(
                db,
                email=email,
                password_hash=hash_password(temp_password),
                name=name,
                must_change_password=password is None,
            )
            created = True

        await GuardianRepository.link_student(db, guardian.id, student_id)
        await db.commit()
    except IntegrityError:
        # Another request created the same account; link to it instead
        await db.rollback()
        guardian = await GuardianRepository.get_by_email(db, email)
        if guardian is None:
            raise
        await GuardianRepository.link_student(db, guardian.id, student_id)
        await db.commit()
        created = False
        temp_password = None

    logger.info(
        f"Guardian {guardian.id} linked to student {student_id} "
        f"({'new account' if created else 'existing account'})"
    )

    email_sent = False
    if temp_password:
        try:
            email_sent = await send_guardian_access(
                to_email=email,
                guardian_name=name,
                student_name=student.name,
                temp_password=temp_password,
            )
        except Exception as e:
            logger.error(f"Failed to send guardian credentials for student {student_id}: {e}")

    return GuardianAccessResult(guardian_id=guardian.id, created=created, email_sent=email_sent)
