"""
Enrollments Repository

Database operations for enrollments. Functions flush but never commit:
services group several writes into one transaction and own the
commit/rollback.

Design Principles:
- All queries are parameterized (no SQL injection)
- Status changes go through ``update_status`` and the transition table
- Timezone-aware datetime handling (UTC)
"""

from uuid import UUID

from sqlalchemy import asc, delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Enrollment, EnrollmentStatus


async def create(
    db: AsyncSession,
    *,
    invite_token_hash: str,
    candidate_name: str,
    academic_year: int,
    parent_name: str | None = None,
    parent_email: str | None = None,
    parent_phone: str | None = None,
    details: dict | None = None,
    student_id: UUID | None = None,
) -> Enrollment:
    """Add a new draft enrollment to the session."""
    enrollment = Enrollment(
        invite_token_hash=invite_token_hash,
        candidate_name=candidate_name,
        academic_year=academic_year,
        parent_name=parent_name,
        parent_email=parent_email,
        parent_phone=parent_phone,
        details=details or {},
        student_id=student_id,
        status=EnrollmentStatus.DRAFT,
    )
    db.add(enrollment)
    await db.flush()
    await db.refresh(enrollment)
    return enrollment


async def get_by_id(db: AsyncSession, id: UUID) -> Enrollment | None:
    """Get enrollment by ID."""
    return await db.get(Enrollment, id)


async def get_by_id_for_update(db: AsyncSession, id: UUID) -> Enrollment | None:
    """
    Get enrollment by ID holding a row lock until the transaction ends.

    Used by operations that must not interleave (approval, cancellation,
    transfer, installment generation).
    """
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.id == id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_token_hash(db: AsyncSession, token_hash: str) -> Enrollment | None:
    """Get enrollment by the SHA-256 hash of its invitation token."""
    result = await db.execute(select(Enrollment).where(Enrollment.invite_token_hash == token_hash))
    return result.scalar_one_or_none()


# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[EnrollmentStatus, set[EnrollmentStatus]] = {
    EnrollmentStatus.DRAFT: {
        EnrollmentStatus.SENT,  # Parent or staff submits for review
        EnrollmentStatus.APPROVED,  # Staff may approve without a submission
        EnrollmentStatus.CANCELLED,
    },
    EnrollmentStatus.SENT: {
        EnrollmentStatus.DRAFT,  # Reopened for parent editing
        EnrollmentStatus.APPROVED,
        EnrollmentStatus.CANCELLED,
    },
    EnrollmentStatus.COMPLETED: {
        EnrollmentStatus.SENT,
        EnrollmentStatus.APPROVED,
        EnrollmentStatus.CANCELLED,
    },
    # Approved enrollments only leave through a transfer
    EnrollmentStatus.APPROVED: {
        EnrollmentStatus.CANCELLED,
    },
    # Terminal state - no transitions allowed
    EnrollmentStatus.CANCELLED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: EnrollmentStatus,
        new_status: EnrollmentStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def is_valid_transition(current: EnrollmentStatus, new: EnrollmentStatus) -> bool:
    return new in VALID_STATUS_TRANSITIONS.get(current, set())


async def update_status(
    db: AsyncSession,
    enrollment: Enrollment,
    status: EnrollmentStatus,
    **kwargs,
) -> Enrollment:
    """
    Update enrollment status and optional fields.

    Validates that the status transition is allowed by the state machine.

    Args:
        db: Database session
        enrollment: Enrollment to update (loaded in this session)
        status: New status to set
        **kwargs: Additional fields to update (e.g., submitted_at)

    Returns:
        Updated Enrollment

    Raises:
        InvalidStatusTransitionError: If status transition is not allowed
    """
    current_status = enrollment.status
    if not is_valid_transition(current_status, status):
        raise InvalidStatusTransitionError(current_status, status)

    enrollment.status = status
    for key, value in kwargs.items():
        if hasattr(enrollment, key):
            setattr(enrollment, key, value)

    await db.flush()
    return enrollment


async def delete_enrollment(db: AsyncSession, enrollment: Enrollment) -> None:
    """Hard delete an enrollment (documents and installments cascade)."""
    await db.execute(delete(Enrollment).where(Enrollment.id == enrollment.id))
    await db.flush()


# ============================================
# Renewal Lookups
# ============================================


async def get_active_for_student_year(
    db: AsyncSession, student_id: UUID, academic_year: int
) -> Enrollment | None:
    """Non-cancelled enrollment of a student for a given year, if any."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.academic_year == academic_year,
            Enrollment.status != EnrollmentStatus.CANCELLED,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_renewal_of(
    db: AsyncSession, source_id: UUID, academic_year: int
) -> Enrollment | None:
    """Non-cancelled renewal created from ``source_id`` for a given year, if any."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.details["renewed_from"].astext == str(source_id),
            Enrollment.academic_year == academic_year,
            Enrollment.status != EnrollmentStatus.CANCELLED,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_for_student(
    db: AsyncSession, student_id: UUID, before_year: int | None = None
) -> Enrollment | None:
    """Most recent non-cancelled enrollment of a student, optionally before a year."""
    query = select(Enrollment).where(
        Enrollment.student_id == student_id,
        Enrollment.status != EnrollmentStatus.CANCELLED,
    )
    if before_year is not None:
        query = query.where(Enrollment.academic_year < before_year)

    result = await db.execute(
        query.order_by(desc(Enrollment.academic_year), desc(Enrollment.created_at)).limit(1)
    )
    return result.scalar_one_or_none()


# ============================================
# Background Job Repository Methods
# ============================================


async def get_pending_student_sync(db: AsyncSession, limit: int = 100) -> list[Enrollment]:
    """Enrollments whose latest edits have not reached the student record yet."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.student_sync_pending.is_(True),
            Enrollment.student_id.is_not(None),
        )
        .order_by(asc(Enrollment.updated_at))
        .limit(limit)
    )
    return list(result.scalars().all())


async def clear_student_sync_pending(
    db: AsyncSession, enrollment_id: UUID, seen_version: int
) -> bool:
    """
    Clear the pending sync flag without bumping the enrollment version.

    Bulk UPDATEs bypass the ORM version counter, so a parent's open wizard
    keeps a valid ``expected_version``. The flag stays set when the
    enrollment changed after ``seen_version``.

    Returns:
        True if the flag was cleared
    """
    result = await db.execute(
        update(Enrollment)
        .where(Enrollment.id == enrollment_id, Enrollment.version == seen_version)
        .values(student_sync_pending=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


# ============================================
# Admin Repository Methods
# ============================================


async def get_enrollments_for_admin(
    db: AsyncSession,
    *,
    status: EnrollmentStatus | None = None,
    academic_year: int | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Enrollment], int]:
    """
    Get enrollments with filters, sorting, and pagination for the staff console.

    Args:
        db: Database session
        status: Filter by enrollment status (optional)
        academic_year: Filter by academic year (optional)
        search: Case-insensitive search on candidate name, parent name and e-mail
        sort_by: Column to sort by (created_at, candidate_name, academic_year)
        sort_order: Sort direction (asc, desc)
        skip: Number of records to skip
        limit: Maximum records to return

    Returns:
        Tuple of (list of enrollments, total count matching filters)
    """
    query = select(Enrollment)

    if status:
        query = query.where(Enrollment.status == status)

    if academic_year:
        query = query.where(Enrollment.academic_year == academic_year)

    if search:
        search_pattern = f"%{search}%"
        query = query.where(
            or_(
                Enrollment.candidate_name.ilike(search_pattern),
                Enrollment.parent_name.ilike(search_pattern),
                Enrollment.parent_email.ilike(search_pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    valid_sort_columns = {"created_at", "candidate_name", "academic_year"}
    if sort_by not in valid_sort_columns:
        sort_by = "created_at"

    sort_column = getattr(Enrollment, sort_by)
    if sort_order.lower() == "asc":
        query = query.order_by(asc(sort_column))
    else:
        query = query.order_by(desc(sort_column))

    query = query.offset(skip).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all()), total
