"""
Student Sync Service

Keeps a student record consistent with the enrollment it came from.

Edits to an enrollment linked to a student set ``student_sync_pending`` in
the same transaction as the edit. The sync itself runs in the background:
it copies the biographical mapping onto the student and clears the flag.
A failed sync is logged and left pending for the hourly retry job; it is
never reported to the user who made the edit.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.database import async_session_maker
from admissions.core.scheduler import run_soon
from admissions.modules.enrollments import repository as enrollment_repository
from admissions.modules.enrollments.models import Enrollment
from admissions.modules.students.helpers import build_student_fields
from admissions.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)

SYNC_JOB_PREFIX = "students_sync"


async def apply_enrollment_to_student(db: AsyncSession, enrollment: Enrollment) -> bool:
    """
    Copy enrollment data onto the linked student and clear the pending flag.

    The enrollment row itself is never flushed through the ORM, so its
    version does not move. The caller commits.

    Returns:
        True if a student was updated, False if the enrollment has no
        student or the student no longer exists
    """
    seen_version = enrollment.version

    if enrollment.student_id is None:
        await enrollment_repository.clear_student_sync_pending(db, enrollment.id, seen_version)
        return False

    student = await StudentRepository.get_by_id(db, enrollment.student_id)
    if student is None:
        logger.warning(
            f"Enrollment {enrollment.id} references missing student {enrollment.student_id}"
        )
        await enrollment_repository.clear_student_sync_pending(db, enrollment.id, seen_version)
        return False

    await StudentRepository.update_fields(db, student, **build_student_fields(enrollment))
    await enrollment_repository.clear_student_sync_pending(db, enrollment.id, seen_version)
    return True


async def sync_student_from_enrollment(enrollment_id: UUID) -> bool:
    """
    Propagate an enrollment's biographical data to its student record.

    Runs in its own session. Never raises.

    Returns:
        True if the student record was updated
    """
    try:
        async with async_session_maker() as db:
            enrollment = await enrollment_repository.get_by_id(db, enrollment_id)
            if enrollment is None:
                logger.warning(f"Student sync skipped: enrollment {enrollment_id} not found")
                return False

            updated = await apply_enrollment_to_student(db, enrollment)
            await db.commit()

        if updated:
            logger.info(f"Synced student record from enrollment {enrollment_id}")
        return updated
    except Exception as e:
        logger.error(
            f"Student sync failed for enrollment {enrollment_id}: {e}. "
            "It will be retried by the reconciliation job.",
            exc_info=True,
        )
        return False


def schedule_student_sync(enrollment_id: UUID) -> bool:
    """
    Dispatch a background sync for an enrollment without waiting for it.

    Repeated calls for the same enrollment within a short window collapse
    into one run.
    """
    try:
        return run_soon(
            f"{SYNC_JOB_PREFIX}:{enrollment_id}",
            sync_student_from_enrollment,
            enrollment_id,
        )
    except Exception as e:
        logger.error(f"Could not dispatch student sync for enrollment {enrollment_id}: {e}")
        return False


async def resync_pending_students() -> dict[str, Any]:
    """
    Retry student syncs that are still pending.

    This job is idempotent: enrollments leave the pending set only when
    their sync succeeds.

    Returns:
        Dict with counts of synced and failed enrollments
    """
    logger.info("Starting pending student sync job...")

    async with async_session_maker() as db:
        pending = await enrollment_repository.get_pending_student_sync(db)
        pending_ids = [enrollment.id for enrollment in pending]

    logger.info(f"Found {len(pending_ids)} enrollments with pending student sync")

    results: dict[str, Any] = {"synced": 0, "failed": 0}
    for enrollment_id in pending_ids:
        if await sync_student_from_enrollment(enrollment_id):
            results["synced"] += 1
        else:
            results["failed"] += 1

    logger.info(
        f"Pending student sync job completed. "
        f"Synced: {results['synced']}, Failed: {results['failed']}"
    )
    return results
