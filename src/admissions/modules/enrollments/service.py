"""
Enrollments Service Layer

Business logic for the enrollment lifecycle:

    draft -> sent -> approved
      ^       |
      +-------+ (reopen)
    any non-approved -> cancelled      (staff override)
    any non-cancelled -> cancelled     (transfer, also from approved)

This module implements:
1. Invitations: staff create a draft and the parent receives a link with an
   opaque token. Only the SHA-256 hash of the token is stored.
2. Parent wizard: autosave while in draft, then submit for review.
3. Staff actions: edit, submit, reopen, cancel, transfer, delete draft.
4. Read models: public (token) and staff views with the derived mode.

Approval lives in the approvals module and renewal in the renewals module.
"""

import hashlib
import logging
import secrets
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from admissions.core.email import build_invite_url, send_enrollment_invitation
from admissions.core.errors import (
    AdmissionsServiceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from admissions.modules.documents.schemas import build_document_list
from admissions.modules.documents.service import all_required_approved, discard_stored_files
from admissions.modules.enrollments import repository
from admissions.modules.enrollments.helpers import (
    TRANSFER_REASON_PREFIX,
    derive_enrollment_mode,
    merge_details,
    missing_submission_fields,
)
from admissions.modules.enrollments.models import Enrollment, EnrollmentStatus, EnrollmentType
from admissions.modules.enrollments.schemas import (
    AutosaveResponse,
    EnrollmentCreate,
    EnrollmentDetail,
    EnrollmentDraftUpdate,
    EnrollmentPublicView,
    EnrollmentUpdate,
)
from admissions.modules.notifications import NotificationKind, notify
from admissions.modules.students.models import StudentStatus
from admissions.modules.students.repository import StudentRepository
from admissions.modules.students.service import schedule_student_sync

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32  # 256 bits of entropy when using token_urlsafe

# Statuses from which an enrollment may be submitted for review
SUBMITTABLE_STATUSES = {EnrollmentStatus.DRAFT, EnrollmentStatus.COMPLETED}

# Statuses from which staff may cancel (approved only leaves through transfer)
CANCELLABLE_STATUSES = {
    EnrollmentStatus.DRAFT,
    EnrollmentStatus.SENT,
    EnrollmentStatus.COMPLETED,
}


def hash_token(token: str) -> str:
    """
    Hash an invitation token for storage using SHA-256.

    Args:
        token: The plain text token

    Returns:
        Hex-encoded SHA-256 hash of the token
    """
    return hashlib.sha256(token.encode()).hexdigest()


def generate_invite_token() -> str:
    """Generate a cryptographically secure URL-safe invitation token."""
    return secrets.token_urlsafe(TOKEN_LENGTH)


class EnrollmentNotEditableError(InvalidTransitionError):
    """Raised when the parent tries to edit an enrollment that left draft."""

    def __init__(self, current_status: EnrollmentStatus):
        super().__init__(
            message=f"Enrollment is {current_status.value} and can no longer be edited "
            "through the invitation link.",
            error_code="ENROLLMENT_NOT_EDITABLE",
        )


class EnrollmentVersionConflictError(AdmissionsServiceError):
    """Raised when a staff edit was based on an outdated version."""

    def __init__(self, enrollment_id: UUID, current_version: int | None = None):
        self.current_version = current_version
        super().__init__(
            message=f"Enrollment {enrollment_id} was changed by someone else. "
            "Reload and try again.",
            error_code="ENROLLMENT_VERSION_CONFLICT",
            status_code=409,
        )


class EnrollmentNotFoundError(NotFoundError):
    def __init__(self, enrollment_id: UUID | None = None):
        super().__init__("Enrollment", enrollment_id)


# ============================================
# Read Operations
# ============================================


async def get_enrollment(db: AsyncSession, enrollment_id: UUID) -> Enrollment:
    """
    Get an enrollment by ID.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
    """
    enrollment = await repository.get_by_id(db, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFoundError(enrollment_id)
    return enrollment


async def get_enrollment_for_update(db: AsyncSession, enrollment_id: UUID) -> Enrollment:
    """Get an enrollment holding a row lock for the rest of the transaction."""
    enrollment = await repository.get_by_id_for_update(db, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFoundError(enrollment_id)
    return enrollment


async def get_enrollment_by_token(db: AsyncSession, token: str) -> Enrollment:
    """
    Resolve a parent invitation token.

    Cancelled enrollments are reported as not found: cancellation revokes
    the parent's access.

    Raises:
        EnrollmentNotFoundError: If the token is unknown or revoked
    """
    enrollment = await repository.get_by_token_hash(db, hash_token(token))
    if not enrollment or enrollment.status == EnrollmentStatus.CANCELLED:
        raise EnrollmentNotFoundError()
    return enrollment


def to_public_view(enrollment: Enrollment) -> EnrollmentPublicView:
    """Parent-facing representation with the derived mode."""
    return EnrollmentPublicView(
        id=enrollment.id,
        candidate_name=enrollment.candidate_name,
        academic_year=enrollment.academic_year,
        parent_name=enrollment.parent_name,
        parent_email=enrollment.parent_email,
        parent_phone=enrollment.parent_phone,
        details=enrollment.details or {},
        status=enrollment.status,
        mode=derive_enrollment_mode(enrollment),
        version=enrollment.version,
        documents=build_document_list(enrollment.documents),
    )


def to_detail(enrollment: Enrollment) -> EnrollmentDetail:
    """Staff representation, including the advisory documentation flag."""
    public = to_public_view(enrollment)
    return EnrollmentDetail(
        **public.model_dump(),
        student_id=enrollment.student_id,
        financial_plan_id=enrollment.financial_plan_id,
        documents_complete=all_required_approved(enrollment.documents),
        student_sync_pending=enrollment.student_sync_pending,
        submitted_at=enrollment.submitted_at,
        approved_at=enrollment.approved_at,
        approved_by=enrollment.approved_by,
        created_at=enrollment.created_at,
        updated_at=enrollment.updated_at,
    )


async def list_enrollments(
    db: AsyncSession,
    *,
    status: EnrollmentStatus | None = None,
    academic_year: int | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 20,
) -> dict:
    """
    Get a paginated list of enrollments for the staff console.

    Returns:
        Dict with enrollments list, total count, skip, and limit
    """
    limit = min(max(1, limit), 100)
    skip = max(0, skip)

    enrollments, total = await repository.get_enrollments_for_admin(
        db,
        status=status,
        academic_year=academic_year,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=skip,
        limit=limit,
    )

    logger.info(f"Found {total} enrollments, returning {len(enrollments)}")

    return {
        "enrollments": enrollments,
        "total": total,
        "skip": skip,
        "limit": limit,
    }


# ============================================
# Invitations
# ============================================


async def send_invitation(enrollment: Enrollment, token: str) -> bool:
    """Send the invitation e-mail if a parent address is known. Never raises."""
    if not enrollment.parent_email:
        return False
    try:
        sent = await send_enrollment_invitation(
            to_email=enrollment.parent_email,
            parent_name=enrollment.parent_name,
            candidate_name=enrollment.candidate_name,
            academic_year=enrollment.academic_year,
            token=token,
        )
        if not sent:
            logger.error(f"Failed to send invitation e-mail for enrollment {enrollment.id}")
        return sent
    except Exception as e:
        logger.error(f"Exception sending invitation e-mail for enrollment {enrollment.id}: {e}")
        return False


async def create_enrollment(
    db: AsyncSession,
    data: EnrollmentCreate,
    staff_id: UUID,
) -> tuple[Enrollment, str]:
    """
    Create a draft enrollment and invite the parent.

    Args:
        db: Database session
        data: Candidate and parent contact
        staff_id: Staff member creating the enrollment

    Returns:
        Tuple of (enrollment, invitation URL)
    """
    token = generate_invite_token()

    enrollment = await repository.create(
        db,
        invite_token_hash=hash_token(token),
        candidate_name=data.candidate_name.strip(),
        academic_year=data.academic_year,
        parent_name=data.parent_name,
        parent_email=str(data.parent_email) if data.parent_email else None,
        parent_phone=data.parent_phone,
        details={"enrollment_type": EnrollmentType.NEW.value},
    )
    await db.commit()

    logger.info(
        f"Staff {staff_id} created enrollment {enrollment.id} for year {enrollment.academic_year}"
    )

    await send_invitation(enrollment, token)
    return enrollment, build_invite_url(token)


async def regenerate_invite(
    db: AsyncSession,
    enrollment_id: UUID,
) -> tuple[Enrollment, str, bool]:
    """
    Issue a new invitation token, invalidating the previous link.

    Returns:
        Tuple of (enrollment, new invitation URL, whether the e-mail was sent)

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is cancelled
    """
    enrollment = await get_enrollment(db, enrollment_id)
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(f"Enrollment {enrollment_id} is cancelled.")

    token = generate_invite_token()
    enrollment.invite_token_hash = hash_token(token)
    await db.commit()

    logger.info(f"Regenerated invitation link for enrollment {enrollment_id}")

    email_sent = await send_invitation(enrollment, token)
    return enrollment, build_invite_url(token), email_sent


# ============================================
# Editing
# ============================================


def _apply_edits(enrollment: Enrollment, data: EnrollmentDraftUpdate) -> bool:
    """
    Apply the fields present in ``data`` to the enrollment.

    Returns:
        True if anything changed
    """
    changed = False
    fields = data.model_dump(exclude_unset=True, exclude={"details", "expected_version"})

    for key, value in fields.items():
        if value is not None and key == "parent_email":
            value = str(value)
        if key == "candidate_name" and value:
            value = value.strip()
        if getattr(enrollment, key) != value:
            setattr(enrollment, key, value)
            changed = True

    if data.details is not None:
        merged = merge_details(enrollment.details, data.details.model_dump(exclude_unset=True))
        if merged != (enrollment.details or {}):
            enrollment.details = merged
            changed = True

    if changed and enrollment.student_id is not None:
        enrollment.student_sync_pending = True

    return changed


async def autosave_draft(
    db: AsyncSession,
    token: str,
    data: EnrollmentDraftUpdate,
) -> AutosaveResponse:
    """
    Save the parent's wizard progress.

    Saves are idempotent (an unchanged payload writes nothing) and
    optimistic: when ``expected_version`` does not match, nothing is written
    and a conflict is reported. Persistence failures are logged and reported
    as ``saved=False`` instead of raising.

    Raises:
        EnrollmentNotFoundError: If the token is unknown or revoked
        EnrollmentNotEditableError: If the enrollment is no longer a draft
    """
    enrollment = await get_enrollment_by_token(db, token)

    if enrollment.status != EnrollmentStatus.DRAFT:
        raise EnrollmentNotEditableError(enrollment.status)

    if data.expected_version is not None and data.expected_version != enrollment.version:
        logger.info(
            f"Autosave conflict on enrollment {enrollment.id}: "
            f"client v{data.expected_version}, server v{enrollment.version}"
        )
        return AutosaveResponse(
            saved=False,
            conflict=True,
            version=enrollment.version,
            message="This enrollment was changed elsewhere. Reload to continue.",
        )

    if not _apply_edits(enrollment, data):
        return AutosaveResponse(saved=True, version=enrollment.version, message="No changes.")

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.info(f"Autosave lost a concurrent update race on enrollment {enrollment.id}")
        return AutosaveResponse(
            saved=False,
            conflict=True,
            message="This enrollment was changed elsewhere. Reload to continue.",
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Autosave failed for enrollment {enrollment.id}: {e}", exc_info=True)
        return AutosaveResponse(saved=False, message="Your changes could not be saved yet.")

    if enrollment.student_sync_pending:
        schedule_student_sync(enrollment.id)

    return AutosaveResponse(saved=True, version=enrollment.version, message="Saved.")


async def update_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    data: EnrollmentUpdate,
    staff_id: UUID,
) -> Enrollment:
    """
    Staff edit of an enrollment in any non-cancelled status.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is cancelled
        EnrollmentVersionConflictError: If ``expected_version`` is stale
    """
    enrollment = await get_enrollment(db, enrollment_id)

    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(f"Enrollment {enrollment_id} is cancelled.")

    if data.expected_version is not None and data.expected_version != enrollment.version:
        raise EnrollmentVersionConflictError(enrollment_id, enrollment.version)

    if not _apply_edits(enrollment, data):
        return enrollment

    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise EnrollmentVersionConflictError(enrollment_id) from e

    logger.info(f"Staff {staff_id} updated enrollment {enrollment_id}")

    if enrollment.student_sync_pending:
        schedule_student_sync(enrollment.id)

    return enrollment


# ============================================
# Status Transitions
# ============================================


async def _submit(db: AsyncSession, enrollment: Enrollment) -> Enrollment:
    if enrollment.status not in SUBMITTABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot submit enrollment in status: {enrollment.status.value}. "
            "Only draft enrollments can be submitted for review.",
            error_code="CANNOT_SUBMIT_ENROLLMENT",
        )

    try:
        await repository.update_status(
            db,
            enrollment,
            EnrollmentStatus.SENT,
            submitted_at=datetime.now(UTC),
        )
    except repository.InvalidStatusTransitionError as e:
        raise InvalidTransitionError(str(e), error_code="CANNOT_SUBMIT_ENROLLMENT") from e

    await db.commit()
    return enrollment


async def submit_for_review(
    db: AsyncSession,
    enrollment_id: UUID,
    staff_id: UUID | None = None,
) -> Enrollment:
    """
    Move an enrollment from draft to sent.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is not a draft
    """
    enrollment = await get_enrollment_for_update(db, enrollment_id)
    await _submit(db, enrollment)
    logger.info(f"Enrollment {enrollment_id} submitted for review by staff {staff_id}")
    return enrollment


async def submit_draft(db: AsyncSession, token: str) -> Enrollment:
    """
    Parent finalizes the wizard.

    Requires the financial responsible's name and CPF to be filled in.

    Raises:
        EnrollmentNotFoundError: If the token is unknown or revoked
        InvalidTransitionError: If the enrollment is not a draft
        ValidationError: If required fields are missing
    """
    enrollment = await get_enrollment_by_token(db, token)

    if enrollment.status not in SUBMITTABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot submit enrollment in status: {enrollment.status.value}.",
            error_code="CANNOT_SUBMIT_ENROLLMENT",
        )

    missing = missing_submission_fields(enrollment)
    if missing:
        raise ValidationError(
            f"Required fields are missing: {', '.join(missing)}",
            error_code="MISSING_REQUIRED_FIELDS",
        )

    await _submit(db, enrollment)
    logger.info(f"Enrollment {enrollment.id} submitted for review by the parent")

    await notify(
        NotificationKind.ENROLLMENT_SUBMITTED,
        enrollment.id,
        f"{enrollment.candidate_name} ({enrollment.academic_year}) is ready for review.",
    )
    return enrollment


async def reopen_for_editing(
    db: AsyncSession,
    enrollment_id: UUID,
    staff_id: UUID,
) -> Enrollment:
    """
    Return a submitted enrollment to draft so the parent can edit it again.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is not sent
    """
    enrollment = await get_enrollment_for_update(db, enrollment_id)

    if enrollment.status != EnrollmentStatus.SENT:
        raise InvalidTransitionError(
            f"Cannot reopen enrollment in status: {enrollment.status.value}. "
            "Only submitted enrollments can be reopened.",
            error_code="CANNOT_REOPEN_ENROLLMENT",
        )

    await repository.update_status(db, enrollment, EnrollmentStatus.DRAFT)
    await db.commit()

    logger.info(f"Staff {staff_id} reopened enrollment {enrollment_id} for editing")
    return enrollment


def _require_reason(reason: str | None, action: str) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError(f"A reason is required to {action} an enrollment.")
    return cleaned


async def cancel_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    reason: str,
    staff_id: UUID,
) -> Enrollment:
    """
    Cancel an enrollment that has not been approved.

    Records the reason and timestamp in ``details``.

    Raises:
        ValidationError: If the reason is blank
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is approved or already cancelled
    """
    reason = _require_reason(reason, "cancel")
    enrollment = await get_enrollment_for_update(db, enrollment_id)

    if enrollment.status not in CANCELLABLE_STATUSES:
        hint = (
            " Approved enrollments can only be transferred."
            if enrollment.status == EnrollmentStatus.APPROVED
            else ""
        )
        raise InvalidTransitionError(
            f"Cannot cancel enrollment in status: {enrollment.status.value}.{hint}",
            error_code="CANNOT_CANCEL_ENROLLMENT",
        )

    now = datetime.now(UTC)
    await repository.update_status(
        db,
        enrollment,
        EnrollmentStatus.CANCELLED,
        details=merge_details(
            enrollment.details,
            {"cancellation_reason": reason, "cancelled_at": now.isoformat()},
            allow_system_fields=True,
        ),
    )
    await db.commit()

    logger.info(f"Staff {staff_id} cancelled enrollment {enrollment_id}")
    return enrollment


async def transfer_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    reason: str,
    staff_id: UUID,
) -> Enrollment:
    """
    Record that the student is leaving the school.

    Cancels the enrollment from any non-cancelled status (including
    approved) and marks the linked student as transferred, in one
    transaction.

    Raises:
        ValidationError: If the reason is blank
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is already cancelled
    """
    reason = _require_reason(reason, "transfer")
    enrollment = await get_enrollment_for_update(db, enrollment_id)

    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(
            f"Enrollment {enrollment_id} is already cancelled.",
            error_code="CANNOT_TRANSFER_ENROLLMENT",
        )

    now = datetime.now(UTC)
    try:
        await repository.update_status(
            db,
            enrollment,
            EnrollmentStatus.CANCELLED,
            details=merge_details(
                enrollment.details,
                {
                    "cancellation_reason": f"{TRANSFER_REASON_PREFIX}{reason}",
                    "cancelled_at": now.isoformat(),
                },
                allow_system_fields=True,
            ),
        )
        if enrollment.student_id is not None:
            await StudentRepository.update_status(
                db, enrollment.student_id, StudentStatus.TRANSFERRED
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Staff {staff_id} transferred out enrollment {enrollment_id}")
    return enrollment


async def delete_draft(
    db: AsyncSession,
    enrollment_id: UUID,
    staff_id: UUID,
) -> None:
    """
    Permanently delete a draft enrollment and its stored documents.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        InvalidTransitionError: If the enrollment is not a draft
    """
    enrollment = await get_enrollment_for_update(db, enrollment_id)

    if enrollment.status != EnrollmentStatus.DRAFT:
        raise InvalidTransitionError(
            f"Cannot delete enrollment in status: {enrollment.status.value}. "
            "Only drafts can be deleted; cancel it instead.",
            error_code="CANNOT_DELETE_ENROLLMENT",
        )

    stored_refs = [document.storage_ref for document in enrollment.documents]

    await repository.delete_enrollment(db, enrollment)
    await db.commit()

    logger.info(f"Staff {staff_id} deleted draft enrollment {enrollment_id}")

    await discard_stored_files(stored_refs)
