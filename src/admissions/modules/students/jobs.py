"""
Student Background Jobs

- students_resync_pending: hourly retry of student syncs that failed or
  were never dispatched (e.g. the scheduler was down when the edit happened)
"""

import logging

from apscheduler.triggers.interval import IntervalTrigger

from admissions.core.scheduler import register_job
from admissions.modules.students.service import resync_pending_students

logger = logging.getLogger(__name__)

JOB_ID_RESYNC_PENDING = "students_resync_pending"


async def _resync_pending_job() -> None:
    await resync_pending_students()


def register_student_jobs() -> None:
    """
    Register student background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    logger.info("Registering student background jobs...")

    register_job(
        job_id=JOB_ID_RESYNC_PENDING,
        func=_resync_pending_job,
        trigger=IntervalTrigger(hours=1),
    )
    logger.info(f"Registered job: {JOB_ID_RESYNC_PENDING} (interval: 1 hour)")
