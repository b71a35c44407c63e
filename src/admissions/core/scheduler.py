"""
Background Job Scheduler

APScheduler (AsyncIO) instance shared by the admissions service. It runs two
kinds of work:

- Interval jobs, registered by feature modules before startup
  (e.g. the hourly retry of pending student syncs)
- One-off tasks dispatched with ``run_soon`` (e.g. the student sync that
  follows an enrollment edit). Repeated dispatches with the same id inside
  the delay window collapse into one run.

Failures are logged by the job listener and never stop the scheduler.
Registered jobs can be listed, triggered, paused and resumed from the staff
debug endpoints.
"""

import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, None]]

SCHEDULER_TIMEZONE = "UTC"

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 5 * 60,
}

# Delay before a one-off task runs; also its coalescing window
RUN_SOON_DELAY_SECONDS = 2.0

_scheduler: AsyncIOScheduler | None = None

# Interval jobs by id, added to the scheduler when it starts
_job_registry: dict[str, tuple[JobFunc, IntervalTrigger]] = {}


def _job_listener(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed with exception: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now(UTC).isoformat()}")


def _add_interval_job(job_id: str, func: JobFunc, trigger: IntervalTrigger) -> None:
    _scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
    logger.info(f"Scheduled job: {job_id}")


async def start_scheduler() -> AsyncIOScheduler:
    """Create the scheduler, add every registered interval job and start it."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running, returning existing instance")
        return _scheduler

    logger.info("Initializing background job scheduler...")

    _scheduler = AsyncIOScheduler(
        timezone=SCHEDULER_TIMEZONE,
        executors={"default": {"type": "asyncio"}},
        job_defaults=JOB_DEFAULTS,
    )
    _scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, (func, trigger) in _job_registry.items():
        _add_interval_job(job_id, func, trigger)

    _scheduler.start()
    logger.info(f"Background job scheduler started with {len(_job_registry)} interval jobs")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, waiting for running jobs."""
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        logger.debug("Scheduler not running, nothing to stop")
        return

    logger.info("Stopping background job scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Background job scheduler stopped")


def register_job(job_id: str, func: JobFunc, trigger: IntervalTrigger) -> None:
    """
    Register an interval job.

    Jobs registered before ``start_scheduler`` are added when it starts;
    later registrations are added immediately.
    """
    _job_registry[job_id] = (func, trigger)

    if _scheduler is None:
        logger.debug(f"Scheduler not initialized, job {job_id} will be added on startup")
        return

    _add_interval_job(job_id, func, trigger)


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside the scheduler.

    Returns:
        Dict with ``job_id``, ``status`` ("success" or "error"),
        ``executed_at`` and, on failure, ``error``

    Raises:
        ValueError: If the job is not registered
    """
    if job_id not in _job_registry:
        raise ValueError(
            f"Job {job_id} not found in registry. Available jobs: {list(_job_registry)}"
        )

    func, _ = _job_registry[job_id]
    executed_at = datetime.now(UTC)
    result = {"job_id": job_id, "executed_at": executed_at.isoformat()}

    logger.info(f"Manually triggering job: {job_id}")
    try:
        await func()
    except Exception as e:
        logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
        return {**result, "status": "error", "error": str(e)}

    logger.info(f"Manual execution of job {job_id} completed successfully")
    return {**result, "status": "success"}


def list_registered_jobs() -> list[dict[str, Any]]:
    """Registered interval jobs with their next run time and paused state."""
    jobs = []
    for job_id in _job_registry:
        job_info: dict[str, Any] = {"job_id": job_id, "registered": True}

        if _scheduler is not None:
            scheduled = _scheduler.get_job(job_id)
            next_run = scheduled.next_run_time if scheduled else None
            job_info["next_run_time"] = next_run.isoformat() if next_run else None
            job_info["is_paused"] = next_run is None

        jobs.append(job_info)
    return jobs


def _set_paused(job_id: str, paused: bool) -> bool:
    action = "pause" if paused else "resume"
    if _scheduler is None:
        logger.warning(f"Cannot {action} job {job_id}: scheduler not initialized")
        return False

    if _scheduler.get_job(job_id) is None:
        logger.warning(f"Job not found to {action}: {job_id}")
        return False

    if paused:
        _scheduler.pause_job(job_id)
    else:
        _scheduler.resume_job(job_id)
    logger.info(f"Job {job_id}: {action}d")
    return True


def pause_job(job_id: str) -> bool:
    """Pause a scheduled job. False if the job or scheduler is missing."""
    return _set_paused(job_id, True)


def resume_job(job_id: str) -> bool:
    """Resume a paused job. False if the job or scheduler is missing."""
    return _set_paused(job_id, False)


def run_soon(
    job_id: str,
    func: Callable[..., Coroutine[Any, Any, Any]],
    *args: Any,
    delay_seconds: float = RUN_SOON_DELAY_SECONDS,
) -> bool:
    """
    Schedule a one-off background task.

    A pending task with the same ``job_id`` is replaced, so bursts of edits
    collapse into a single run.

    Returns:
        True if the task was scheduled, False if the scheduler is not running
    """
    if _scheduler is None or not _scheduler.running:
        logger.debug(f"Scheduler not running, background task {job_id} not dispatched")
        return False

    run_date = datetime.now(UTC) + timedelta(seconds=delay_seconds)
    _scheduler.add_job(
        func,
        trigger=DateTrigger(run_date=run_date),
        args=list(args),
        id=job_id,
        replace_existing=True,
    )
    logger.debug(f"Dispatched background task {job_id} for {run_date.isoformat()}")
    return True
