"""
Staff Notification Service

Fire-and-forget notifications to the admissions staff. Each call persists an
in-app notification in its own session and, when a staff inbox is
configured, sends an e-mail. Failures are logged and never propagate to the
operation that triggered them.
"""

import logging
from uuid import UUID

from admissions.core.config import settings
from admissions.core.database import async_session_maker
from admissions.core.email import send_staff_notification
from admissions.modules.notifications import repository
from admissions.modules.notifications.models import NotificationKind

logger = logging.getLogger(__name__)

DEFAULT_TITLES: dict[NotificationKind, str] = {
    NotificationKind.DOCUMENT_RESUBMITTED: "Document resubmitted",
    NotificationKind.ENROLLMENT_SUBMITTED: "Enrollment submitted for review",
}


def enrollment_link(enrollment_id: UUID) -> str:
    """Staff console path for an enrollment."""
    return f"/enrollments/{enrollment_id}"


async def notify(
    kind: NotificationKind,
    enrollment_id: UUID | None,
    message: str,
    *,
    title: str | None = None,
) -> bool:
    """
    Notify admissions staff.

    Args:
        kind: Notification category
        enrollment_id: Enrollment the notification refers to
        message: Human readable body
        title: Optional title (defaults per kind)

    Returns:
        True if the notification was persisted, False otherwise
    """
    title = title or DEFAULT_TITLES.get(kind, kind.value)
    link = enrollment_link(enrollment_id) if enrollment_id else None

    persisted = False
    try:
        async with async_session_maker() as db:
            await repository.create(
                db,
                kind=kind,
                title=title,
                message=message,
                link=link,
                enrollment_id=enrollment_id,
            )
            await db.commit()
        persisted = True
        logger.info(f"Staff notification '{kind.value}' recorded for enrollment {enrollment_id}")
    except Exception as e:
        logger.error(
            f"Failed to record staff notification '{kind.value}' "
            f"for enrollment {enrollment_id}: {e}",
            exc_info=True,
        )

    if settings.staff_notification_email:
        try:
            await send_staff_notification(
                to_email=settings.staff_notification_email,
                title=title,
                message=message,
                link=link,
            )
        except Exception as e:
            logger.error(f"Failed to e-mail staff notification '{kind.value}': {e}")

    return persisted
