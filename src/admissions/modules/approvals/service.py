"""
Approval Service

Turns an enrollment into an official student record.

Approval is one transaction:
1. Lock the enrollment row
2. Check it can still be approved (draft, sent or completed)
3. Create the student from the enrollment's biographical data, or refresh
   the existing student when the enrollment is a renewal
4. Mark the enrollment approved and link the student

If any step fails everything rolls back and the enrollment keeps its
previous status. Guardian portal access is provisioned afterwards, outside
the transaction, and never fails the approval.

Documentation completeness is reported to the caller but not enforced.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.errors import (
    AdmissionsServiceError,
    DependencyFailureError,
    InvalidTransitionError,
    ValidationError,
)
from admissions.modules.documents.service import all_required_approved
from admissions.modules.enrollments import repository as enrollment_repository
from admissions.modules.enrollments.models import Enrollment, EnrollmentStatus
from admissions.modules.enrollments.service import EnrollmentNotFoundError
from admissions.modules.guardians.service import GuardianAccessResult, create_guardian_account
from admissions.modules.students.helpers import build_student_fields
from admissions.modules.students.models import Student, StudentStatus
from admissions.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)

# Permissive on purpose: staff may approve straight from a draft
APPROVABLE_STATUSES = {
    EnrollmentStatus.DRAFT,
    EnrollmentStatus.SENT,
    EnrollmentStatus.COMPLETED,
}


class StudentProvisioningError(DependencyFailureError):
    """Raised when the student record could not be created."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="STUDENT_PROVISIONING_FAILED")


class CannotApproveEnrollmentError(InvalidTransitionError):
    def __init__(self, current_status: EnrollmentStatus):
        super().__init__(
            message=f"Cannot approve enrollment in status: {current_status.value}.",
            error_code="CANNOT_APPROVE_ENROLLMENT",
        )


@dataclass
class ApprovalResult:
    enrollment_id: UUID
    student_id: UUID
    documents_complete: bool
    guardian_access: GuardianAccessResult | None = None


async def _provision_student(db: AsyncSession, enrollment: Enrollment) -> Student:
    """
    Create the student of a new admission, or refresh the existing one.

    Renewals already point at their student; approving one updates that
    record instead of creating a second student.
    """
    fields = build_student_fields(enrollment)

    if enrollment.student_id is None:
        return await StudentRepository.create(
            db,
            origin_enrollment_id=enrollment.id,
            **fields,
        )

    student = await StudentRepository.get_by_id(db, enrollment.student_id)
    if student is None:
        raise StudentProvisioningError(
            f"Student {enrollment.student_id} linked to this enrollment no longer exists."
        )

    logger.info(f"Enrollment {enrollment.id} renews existing student {student.id}")
    return await StudentRepository.update_fields(
        db, student, status=StudentStatus.ACTIVE, **fields
    )


async def approve_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    staff_id: UUID,
    *,
    provision_guardian: bool = False,
) -> ApprovalResult:
    """
    Approve an enrollment and create the student record.

    Args:
        db: Database session
        enrollment_id: Enrollment to approve
        staff_id: Staff member approving
        provision_guardian: Also give the financial responsible portal access

    Returns:
        ApprovalResult with the new student id and the documentation flag

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        CannotApproveEnrollmentError: If already approved or cancelled
        StudentProvisioningError: If the student could not be created
    """
    logger.info(f"Staff {staff_id} approving enrollment {enrollment_id}")

    enrollment = await enrollment_repository.get_by_id_for_update(db, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFoundError(enrollment_id)

    if enrollment.status not in APPROVABLE_STATUSES:
        logger.warning(f"Cannot approve enrollment {enrollment_id}: status={enrollment.status}")
        raise CannotApproveEnrollmentError(enrollment.status)

    documents_complete = all_required_approved(enrollment.documents)

    try:
        # ============================================
        # ATOMIC TRANSACTION
        # ============================================
        student = await _provision_student(db, enrollment)

        await enrollment_repository.update_status(
            db,
            enrollment,
            EnrollmentStatus.APPROVED,
            student_id=student.id,
            approved_at=datetime.now(UTC),
            approved_by=staff_id,
            student_sync_pending=False,
        )

        await db.commit()

        student_id = student.id

    except AdmissionsServiceError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Student provisioning failed for enrollment {enrollment_id}: {e}", exc_info=True)
        raise StudentProvisioningError(
            "The student record could not be created. The enrollment was not approved; "
            "please try again."
        ) from e

    logger.info(
        f"Enrollment {enrollment_id} approved. Student ID: {student_id}, "
        f"documents complete: {documents_complete}"
    )

    result = ApprovalResult(
        enrollment_id=enrollment_id,
        student_id=student_id,
        documents_complete=documents_complete,
    )

    if provision_guardian:
        result.guardian_access = await _provision_guardian_access(db, enrollment_id, student_id)

    return result


def _guardian_contact(enrollment: Enrollment) -> tuple[str | None, str | None]:
    """E-mail and name of the financial responsible, wizard data first."""
    details = enrollment.details or {}
    email = details.get("parent_email") or enrollment.parent_email
    name = details.get("parent_name") or enrollment.parent_name
    return email, name


async def _provision_guardian_access(
    db: AsyncSession,
    enrollment_id: UUID,
    student_id: UUID,
) -> GuardianAccessResult | None:
    """Best-effort guardian provisioning after a committed approval."""
    enrollment = await enrollment_repository.get_by_id(db, enrollment_id)
    email, name = _guardian_contact(enrollment)

    if not email:
        logger.warning(f"No guardian e-mail on enrollment {enrollment_id}; skipping portal access")
        return None

    try:
        return await create_guardian_account(db, student_id, email, name=name)
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Guardian provisioning failed for enrollment {enrollment_id}: {e}. "
            "The approval was kept.",
            exc_info=True,
        )
        return None


async def grant_guardian_access(
    db: AsyncSession,
    enrollment_id: UUID,
    *,
    email: str | None = None,
    name: str | None = None,
) -> GuardianAccessResult:
    """
    Give the guardian of an approved enrollment access to the portal.

    Args:
        db: Database session
        enrollment_id: Approved enrollment
        email: Login e-mail (defaults to the financial responsible's)
        name: Display name (defaults to the financial responsible's)

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment has no student yet
        ValidationError: If no e-mail is available
    """
    enrollment = await enrollment_repository.get_by_id(db, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFoundError(enrollment_id)

    if enrollment.status != EnrollmentStatus.APPROVED or enrollment.student_id is None:
        raise InvalidTransitionError(
            "Guardian access can only be granted for approved enrollments.",
            error_code="ENROLLMENT_NOT_APPROVED",
        )

    default_email, default_name = _guardian_contact(enrollment)
    email = email or default_email
    if not email:
        raise ValidationError(
            "No guardian e-mail is known for this enrollment.",
            error_code="INVALID_GUARDIAN_EMAIL",
        )

    return await create_guardian_account(
        db, enrollment.student_id, email, name=name or default_name
    )
