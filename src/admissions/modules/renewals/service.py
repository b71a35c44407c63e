"""
Renewal Service

Starts next year's enrollment for a returning student.

A renewal is a new draft that copies the candidate name, the parent
contact and the biographical details of the source enrollment. Documents,
installments and cancellation metadata are not copied.

Renewing is idempotent: if the student already has a non-cancelled
enrollment for the target year (or, for a source without a student, a
renewal of the same source exists for that year) it is returned instead
of creating another one. A partial unique index on (student_id,
academic_year) catches concurrent duplicates.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.email import build_invite_url
from admissions.core.errors import NotFoundError, ValidationError
from admissions.modules.enrollments import repository as enrollment_repository
from admissions.modules.enrollments.helpers import SYSTEM_DETAIL_FIELDS
from admissions.modules.enrollments.models import Enrollment, EnrollmentType
from admissions.modules.enrollments.service import (
    generate_invite_token,
    hash_token,
    send_invitation,
)
from admissions.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)


class RenewalSourceNotFoundError(NotFoundError):
    def __init__(self, source_id: UUID):
        super().__init__("Renewal source", source_id)


@dataclass
class RenewalResult:
    enrollment: Enrollment
    created: bool
    invite_url: str | None = None
    email_sent: bool = False


async def _resolve_source(
    db: AsyncSession, source_id: UUID, target_year: int | None = None
) -> Enrollment:
    """
    Find the enrollment to renew from an enrollment id or a student id.

    For a student id the source is the latest enrollment before
    ``target_year``, so an existing renewal for that year is never its own source.
    """
    enrollment = await enrollment_repository.get_by_id(db, source_id)
    if enrollment:
        return enrollment

    student = await StudentRepository.get_by_id(db, source_id)
    if student:
        latest = await enrollment_repository.get_latest_for_student(
            db, student.id, before_year=target_year
        )
        if latest:
            return latest

    raise RenewalSourceNotFoundError(source_id)


async def _find_existing(
    db: AsyncSession,
    source_id: UUID,
    student_id: UUID | None,
    academic_year: int,
) -> Enrollment | None:
    if student_id is not None:
        return await enrollment_repository.get_active_for_student_year(
            db, student_id, academic_year
        )
    return await enrollment_repository.get_active_renewal_of(db, source_id, academic_year)


def build_renewal_details(source: Enrollment) -> dict:
    """Biographical details of the source without system metadata."""
    details = {
        key: value
        for key, value in (source.details or {}).items()
        if key not in SYSTEM_DETAIL_FIELDS
    }
    details["enrollment_type"] = EnrollmentType.RENEWAL.value
    details["renewed_from"] = str(source.id)
    return details


async def start_renewal(
    db: AsyncSession,
    source_id: UUID,
    target_year: int | None = None,
    staff_id: UUID | None = None,
) -> RenewalResult:
    """
    Create (or return) the renewal draft of an enrollment.

    Args:
        db: Database session
        source_id: Enrollment id, or student id (its latest enrollment is used)
        target_year: Academic year of the renewal (default: source year + 1)
        staff_id: Staff member starting the renewal

    Returns:
        RenewalResult; ``created`` is False when an enrollment already existed.
        ``invite_url`` is only set for a newly created renewal.

    Raises:
        RenewalSourceNotFoundError: If neither an enrollment nor a student matches
        ValidationError: If the target year is not after the source year
    """
    source = await _resolve_source(db, source_id, target_year)
    academic_year = target_year or source.academic_year + 1

    source_key = (source.id, source.student_id)
    existing = await _find_existing(db, *source_key, academic_year)
    if existing and existing.id != source.id:
        logger.info(
            f"Renewal of {source.id} for {academic_year} already exists: {existing.id}"
        )
        return RenewalResult(enrollment=existing, created=False)

    if academic_year <= source.academic_year:
        raise ValidationError(
            f"A renewal must be for a year after {source.academic_year}.",
            error_code="INVALID_RENEWAL_YEAR",
        )

    token = generate_invite_token()
    try:
        renewal = await enrollment_repository.create(
            db,
            invite_token_hash=hash_token(token),
            candidate_name=source.candidate_name,
            academic_year=academic_year,
            parent_name=source.parent_name,
            parent_email=source.parent_email,
            parent_phone=source.parent_phone,
            details=build_renewal_details(source),
            student_id=source.student_id,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _find_existing(db, *source_key, academic_year)
        if existing is None:
            raise
        logger.info(
            f"Concurrent renewal of {source_key[0]} for {academic_year} "
            f"resolved to {existing.id}"
        )
        return RenewalResult(enrollment=existing, created=False)

    logger.info(
        f"Staff {staff_id} renewed enrollment {source.id} into {renewal.id} for {academic_year}"
    )

    email_sent = await send_invitation(renewal, token)
    return RenewalResult(
        enrollment=renewal,
        created=True,
        invite_url=build_invite_url(token),
        email_sent=email_sent,
    )


__all__ = [
    "RenewalResult",
    "RenewalSourceNotFoundError",
    "build_renewal_details",
    "start_renewal",
]
